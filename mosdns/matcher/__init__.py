"""Domain, IP, integer and DNS message matchers, and loaders for them."""