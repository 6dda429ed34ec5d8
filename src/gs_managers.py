"""
Store / resource / layer managers for the GeoServer REST API.

Each call is one round trip through the gateway. Managers only report
success or failure; deciding whether a failure matters is up to the caller.
"""

from __future__ import annotations

import logging
from typing import Optional

from gs_encoders import (
    CoverageDescriptor,
    FeatureTypeDescriptor,
    Format,
    LayerDescriptor,
    ResourceDescriptor,
    StoreDescriptor,
    StoreType,
)
from gs_utils import GeoServerConfig, RestGateway


log = logging.getLogger(__name__)


def configure_layer(
    config: GeoServerConfig,
    gateway: RestGateway,
    workspace: str,
    resource_name: str,
    layer: LayerDescriptor,
) -> bool:
    """
    PUT layer attributes (default style etc.) to /rest/layers/{workspace}:{resource_name}.

    Raises ValueError on missing/empty input before anything is sent;
    an empty LayerDescriptor counts as empty input.
    """
    if workspace is None or resource_name is None or layer is None:
        raise ValueError("Null argument")
    if not workspace or not resource_name or layer.is_empty():
        raise ValueError("Empty argument")

    fq_layer_name = f"{workspace}:{resource_name}"
    url = config.rest_url("layers", fq_layer_name)

    result = gateway.put_xml(url, layer.to_xml())
    if result is not None:
        log.info("Layer successfully configured: %s", fq_layer_name)
    else:
        log.warning("Error configuring layer %s", fq_layer_name)
    return result is not None


class StoreManager:

    def __init__(self, config: GeoServerConfig, gateway: Optional[RestGateway] = None):
        self.config = config
        self.gateway = gateway or RestGateway(config)

    def create(self, workspace: str, store: StoreDescriptor) -> bool:
        """
        POST a new store to /rest/workspaces/{workspace}/{store_type}.xml.

        False is a plain result, not an error: the store may already exist.
        """
        if not workspace:
            raise ValueError("Workspace is required")
        if store is None:
            raise ValueError("Store descriptor is required")

        url = self.config.rest_url("workspaces", workspace, f"{store.store_type}.xml")
        result = self.gateway.post_xml(url, store.to_xml())
        if result is not None:
            log.info("Store successfully created: %s:%s", workspace, store.name)
        else:
            log.warning("Unable to create store %s:%s", workspace, store.name)
        return result is not None


class ResourceManager:
    """Creates feature types / coverages inside an existing store."""

    def __init__(self, config: GeoServerConfig, gateway: Optional[RestGateway] = None):
        self.config = config
        self.gateway = gateway or RestGateway(config)

    def resource_url(self, workspace: str, store_type: StoreType, store_name: str) -> str:
        store_type = StoreType(store_type)
        return self.config.rest_url(
            "workspaces",
            workspace,
            str(store_type),
            store_name,
            store_type.type_name_with_format(Format.XML),
        )

    def create_resource(
        self,
        workspace: str,
        store_type: StoreType,
        store_name: str,
        resource: ResourceDescriptor,
    ) -> bool:
        if not workspace or store_type is None or not store_name or resource is None:
            raise ValueError("Null argument")
        store_type = StoreType(store_type)
        if not resource.name:
            raise ValueError(f"Unable to configure a {store_type.type_name} resource without a name")

        url = self.resource_url(workspace, store_type, store_name)
        qualified = f"{workspace}:{store_name}:{resource.name}"

        result = self.gateway.post_xml(url, resource.to_xml())
        if result is not None:
            log.debug("%s successfully created %s", store_type, qualified)
        else:
            log.error("Error creating %s resource %s", store_type, qualified)
        return result is not None

    def create_feature_type(self, workspace: str, store_name: str, feature_type: FeatureTypeDescriptor) -> bool:
        return self.create_resource(workspace, StoreType.DATASTORES, store_name, feature_type)

    def create_coverage(self, workspace: str, store_name: str, coverage: CoverageDescriptor) -> bool:
        return self.create_resource(workspace, StoreType.COVERAGESTORES, store_name, coverage)

    def configure_layer(self, workspace: str, resource_name: str, layer: LayerDescriptor) -> bool:
        return configure_layer(self.config, self.gateway, workspace, resource_name, layer)


class LayerManager:
    """Standalone layer configuration, for resources that already exist."""

    def __init__(self, config: GeoServerConfig, gateway: Optional[RestGateway] = None):
        self.config = config
        self.gateway = gateway or RestGateway(config)

    def configure_layer(self, workspace: str, resource_name: str, layer: LayerDescriptor) -> bool:
        return configure_layer(self.config, self.gateway, workspace, resource_name, layer)
