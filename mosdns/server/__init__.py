"""Namespace for DNS server components; it holds no modules at present."""