"""URL builders for the backend's management, history and listing APIs."""

from __future__ import annotations

from model_gateway.config import BackendSettings


class BackendUrls:
    def __init__(self, settings: BackendSettings) -> None:
        self._resource_manager_url = settings.resource_manager_url.rstrip("/")
        self._resource_api_version = settings.resource_api_version
        self._regional_host_template = settings.regional_host_template

    def region_lookup(self, resource_id: str) -> str:
        return (
            f"{self._resource_manager_url}/{_strip(resource_id)}"
            f"?api-version={self._resource_api_version}"
        )

    def regional_host(self, region: str) -> str:
        return self._regional_host_template.format(region=region)

    def run_query(self, region: str, resource_id: str, experiment_name: str) -> str:
        return (
            f"{self.regional_host(region)}/history/v1.0/{_strip(resource_id)}"
            f"/experiments/{experiment_name}/runs:query"
        )

    def models(self, region: str, resource_id: str) -> str:
        return f"{self.regional_host(region)}/modelmanagement/v1.0/{_strip(resource_id)}/models"

    def services(self, region: str, resource_id: str) -> str:
        return f"{self.regional_host(region)}/modelmanagement/v1.0/{_strip(resource_id)}/services"


def _strip(resource_id: str) -> str:
    return resource_id.strip("/")
