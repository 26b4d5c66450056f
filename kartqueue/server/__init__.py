"""HTTP and gRPC surfaces."""
