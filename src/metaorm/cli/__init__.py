"""metaorm command line interface."""
