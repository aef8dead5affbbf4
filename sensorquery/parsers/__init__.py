from .flux_csv import FluxResponseParser, clean_csv_value

__all__ = ["FluxResponseParser", "clean_csv_value"]
