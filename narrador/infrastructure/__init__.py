from .content_api import ContentApiClient
from .materializer import AssetMaterializer, classify_asset

__all__ = ["AssetMaterializer", "ContentApiClient", "classify_asset"]
