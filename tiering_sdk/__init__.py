from tiering_sdk.client import TieringClient

__all__ = ["TieringClient"]
