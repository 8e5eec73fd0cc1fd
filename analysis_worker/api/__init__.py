from analysis_worker.api.auth import ApiKeyAuth, require_api_key

__all__ = ["ApiKeyAuth", "require_api_key"]
