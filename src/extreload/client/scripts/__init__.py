"""Browser agent scripts injected into extension bundles."""
