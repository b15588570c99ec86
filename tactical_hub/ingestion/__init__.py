"""Source connectors: polling and push feeds normalised into DataPoints."""
