"""HTTP service for storing, downloading and verifying recorded sessions."""
