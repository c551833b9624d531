"""Resource container and native database loading."""
