"""Calculators that turn enriched tickets into time series and summaries."""
