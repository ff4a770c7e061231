"""Route modules for the pkgtracker HTTP server."""
