"""Pod network plugins (no-op, LXD bridge, CNI) and IPv4 address selection."""