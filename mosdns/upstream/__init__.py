"""Upstream helpers: bootstrapping an upstream server's address."""