"""Background jobs: the nightly expiry sweep and its worker entrypoint."""
