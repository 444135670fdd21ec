"""ANT transport boundary and the outbound page-request path."""
