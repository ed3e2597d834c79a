"""Command line tools for storefront operators."""
