#!/usr/bin/env python3
"""
gs-publish - publish a shapefile to GeoServer over the REST API

What it does:
- Validates the request and the CRS policy locally (no network yet)
- Creates the shapefile datastore (a failure here is tolerated: the store
  may already exist from a previous run)
- Creates the feature type (a failure here stops the run)
- Configures the layer (default style etc.); its result is the run's result

Every stage is reported to an observer as <stage>_started / _succeeded /
_soft_failed / _failed. The default observer writes JSON audit lines.
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import os
import socket
import sys
import time
import uuid
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from gs_encoders import (
    FeatureTypeDescriptor,
    LayerDescriptor,
    ProjectionPolicy,
    ShapefileStoreDescriptor,
    StoreParams,
    UploadMethod,
)
from gs_managers import LayerManager, ResourceManager, StoreManager
from gs_utils import GeoServerConfig, RestGateway


LOG_FILE_NAME = "gs-publish-audit.log"

Observer = Callable[..., None]

log = logging.getLogger(__name__)


def default_log_dir() -> Path:
    """Logs go to $GS_PUBLISH_LOG_DIR, or ./logs."""
    return Path(os.getenv("GS_PUBLISH_LOG_DIR") or Path.cwd() / "logs")


def cleanup_old_logs(logs_dir: Path, max_days: int = 7) -> None:
    """Remove rotated audit logs last written more than max_days ago."""
    cutoff = time.time() - max_days * 86400
    for old in logs_dir.glob(f"{LOG_FILE_NAME}*"):
        try:
            if old.stat().st_mtime < cutoff:
                old.unlink()
        except OSError:
            log.debug("could not remove old log %s", old)


def _audit_handler(log_path: Path) -> Optional[RotatingFileHandler]:
    for h in logging.getLogger().handlers:
        if isinstance(h, RotatingFileHandler) and h.baseFilename == os.path.abspath(log_path):
            return h
    return None


def setup_file_logging(log_dir: Optional[Path] = None, max_bytes: int = 10 * 1024 * 1024,
                       backups: int = 20, keep_days: int = 7) -> Path:
    """
    Send root logging to <log_dir>/gs-publish-audit.log, rotated by size.

    Calling it again for the same directory reuses the existing handler.
    """
    log_path = Path(log_dir or default_log_dir()) / LOG_FILE_NAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    if _audit_handler(log_path) is None:
        handler = RotatingFileHandler(str(log_path), maxBytes=max_bytes, backupCount=backups, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)sZ %(levelname)s %(name)s %(message)s",
                                               datefmt="%Y-%m-%dT%H:%M:%S"))
        root.addHandler(handler)

    cleanup_old_logs(log_path.parent, max_days=keep_days)
    return log_path


def audit(event: str, **fields) -> None:
    """Write an audit event as one JSON line on the gs_publish.audit logger."""
    payload = {"event": event, **fields}
    logging.getLogger("gs_publish.audit").info(json.dumps(payload, default=str))


def shapefile_url(location: Union[str, Path]) -> str:
    """
    Store connection URL for a shapefile. Anything with a scheme (file:, http://...)
    is kept as is; plain paths become file: URLs.
    """
    location = str(location)
    if "://" in location or location.startswith("file:"):
        return location
    return Path(location).resolve().as_uri()


def _present(value: Optional[str]) -> bool:
    return value is not None and len(value) != 0


def _location_present(location: Union[str, Path, None]) -> bool:
    # Path("") is truthy and stringifies to "."
    return location is not None and str(location).strip() not in ("", ".")


class ShapefilePublisher:
    """
    Publishes a shapefile end to end: datastore, feature type, layer.

    Not transactional. Nothing created by an earlier stage is rolled back
    when a later one fails.
    """

    def __init__(
        self,
        config: GeoServerConfig,
        gateway: Optional[RestGateway] = None,
        observer: Optional[Observer] = None,
    ):
        self.config = config
        gateway = gateway or RestGateway(config)
        self.store_manager = StoreManager(config, gateway)
        self.resource_manager = ResourceManager(config, gateway)
        self.layer_manager = LayerManager(config, gateway)
        self.observer = observer or audit

    def _notify(self, stage: str, status: str, **fields) -> None:
        self.observer(f"{stage}_{status}", stage=stage, **fields)

    def validate(
        self,
        workspace: str,
        store_name: str,
        dataset_name: str,
        shapefile: Union[str, Path],
        feature_type: FeatureTypeDescriptor,
        layer: LayerDescriptor,
    ) -> None:
        """Raise ValueError unless the request can be sent as is."""
        if not workspace or not store_name or not _location_present(shapefile) or not dataset_name:
            raise ValueError("Unable to run: null parameter")
        if feature_type is None or feature_type.projection_policy is None:
            raise ValueError("Unable to run: the feature type has no projection policy")
        if not feature_type.name:
            raise ValueError("Unable to run: the feature type has no name")
        if layer is None or layer.is_empty():
            raise ValueError("Unable to run: empty layer descriptor")

        policy = ProjectionPolicy(feature_type.projection_policy)
        srs_present = _present(feature_type.srs)
        native_crs_present = _present(feature_type.native_crs)

        if policy is ProjectionPolicy.REPROJECT_TO_DECLARED and not (srs_present and native_crs_present):
            raise ValueError(
                "Unable to run: you can't ask GeoServer to reproject without both a native CRS and a declared SRS"
            )
        if policy is ProjectionPolicy.NONE and not native_crs_present:
            raise ValueError("Unable to run: you can't ask GeoServer to use a native CRS which is null")
        if policy is ProjectionPolicy.FORCE_DECLARED and not srs_present:
            raise ValueError("Unable to run: you can't force GeoServer to use an SRS which is null")

    def publish_shapefile(
        self,
        workspace: str,
        store_name: str,
        store_params: StoreParams,
        dataset_name: str,
        upload_method: Union[str, UploadMethod],
        shapefile: Union[str, Path],
        feature_type: FeatureTypeDescriptor,
        layer: LayerDescriptor,
    ) -> bool:
        ctx = {"workspace": workspace, "store": store_name, "dataset": dataset_name}

        self._notify("validate", "started", **ctx)
        try:
            self.validate(workspace, store_name, dataset_name, shapefile, feature_type, layer)
            mime_type = UploadMethod.parse(upload_method).mime_type
        except ValueError as e:
            self._notify("validate", "failed", error=str(e), **ctx)
            raise
        self._notify("validate", "succeeded", **ctx)

        location = shapefile_url(shapefile)
        store = ShapefileStoreDescriptor(
            name=store_name,
            url=location,
            mime_type=mime_type,
            params=store_params,
        )
        self._notify("store_create", "started", url=location, mime_type=mime_type, **ctx)
        if self.store_manager.create(workspace, store):
            self._notify("store_create", "succeeded", **ctx)
        else:
            log.error("Unable to create data store for shapefile: %s (datastore might already exist)", location)
            self._notify("store_create", "soft_failed", **ctx)

        if not _present(feature_type.srs):
            feature_type.srs = feature_type.native_crs

        self._notify("resource_create", "started", resource=feature_type.name, srs=feature_type.srs, **ctx)
        if not self.resource_manager.create_feature_type(workspace, store_name, feature_type):
            log.error("Unable to create the feature type for shapefile: %s", location)
            self._notify("resource_create", "failed", **ctx)
            return False
        self._notify("resource_create", "succeeded", **ctx)

        self._notify("layer_configure", "started", layer=f"{workspace}:{dataset_name}", **ctx)
        configured = self.layer_manager.configure_layer(workspace, dataset_name, layer)
        self._notify("layer_configure", "succeeded" if configured else "failed", **ctx)
        return configured


def store_param(value: str) -> Tuple[str, str]:
    """argparse type for --store-param KEY=VALUE."""
    key, sep, val = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"store parameter must look like KEY=VALUE, got {value!r}")
    return key, val


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    env = GeoServerConfig.from_env()
    p = argparse.ArgumentParser(description="Publish a shapefile to GeoServer (datastore + feature type + layer)")
    p.add_argument("--url", type=str, default=env.base_url, help=f"GeoServer base URL (default: {env.base_url}).")
    p.add_argument("--user", type=str, default=env.username, help="GeoServer REST user (default: $GEOSERVER_USER or admin).")
    p.add_argument("--password", type=str, default=env.password, help="GeoServer REST password (default: $GEOSERVER_PASSWORD).")
    p.add_argument("--timeout", type=float, default=env.timeout, help=f"Request timeout in seconds (default: {env.timeout:g}).")
    p.add_argument("--workspace", type=str, required=True, help="Target workspace.")
    p.add_argument("--store", type=str, required=True, help="Datastore name.")
    p.add_argument("--dataset", type=str, required=True, help="Feature type / layer name.")
    p.add_argument("--shapefile", type=str, required=True, help="Shapefile path or URL.")
    p.add_argument("--method", type=str, default="file", choices=["file", "url", "external", "FILE", "URL", "EXTERNAL"],
                   help="Upload method (default: file).")
    p.add_argument("--srs", type=str, default=None, help="Declared SRS, e.g. EPSG:4326.")
    p.add_argument("--native-crs", type=str, default=None, help="Native CRS of the shapefile (code or WKT).")
    p.add_argument("--policy", type=str, default=ProjectionPolicy.FORCE_DECLARED.value,
                   choices=[pp.value for pp in ProjectionPolicy],
                   help="Projection policy (default: FORCE_DECLARED).")
    p.add_argument("--style", type=str, default=None, help="Default style for the layer.")
    p.add_argument("--title", type=str, default=None, help="Feature type title.")
    p.add_argument("--store-param", type=store_param, action="append", default=[], metavar="KEY=VALUE",
                   help="Extra datastore connection parameter (repeatable).")
    p.add_argument("--log-dir", type=str, default=None, help="Audit log directory (default: ./logs).")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    log_path = setup_file_logging(Path(args.log_dir) if args.log_dir else None)

    run_id = str(uuid.uuid4())
    audit("run_started", run_id=run_id, user=getpass.getuser(),
          host=socket.gethostname(),
          url=args.url,
          workspace=args.workspace,
          store=args.store,
          dataset=args.dataset,
          shapefile=args.shapefile,
          method=args.method,
          policy=args.policy,
          audit_log_file=str(log_path),
          )

    try:
        config = GeoServerConfig(base_url=args.url, username=args.user, password=args.password, timeout=args.timeout)
        publisher = ShapefilePublisher(config)

        feature_type = FeatureTypeDescriptor(
            name=args.dataset,
            title=args.title,
            srs=args.srs,
            native_crs=args.native_crs,
            projection_policy=args.policy,
        )
        layer = LayerDescriptor(default_style=args.style, enabled=True)

        print(f"Publishing {args.shapefile} as {args.workspace}:{args.dataset} on {config.base_url} ...")
        ok = publisher.publish_shapefile(
            workspace=args.workspace,
            store_name=args.store,
            store_params=dict(args.store_param),
            dataset_name=args.dataset,
            upload_method=args.method,
            shapefile=args.shapefile,
            feature_type=feature_type,
            layer=layer,
        )
    except Exception as e:
        audit("run_failed", run_id=run_id, error=str(e), error_type=type(e).__name__)
        raise

    audit("run_completed", run_id=run_id, result="SUCCESS" if ok else "FAILURE")
    if ok:
        print(f"Done. Layer {args.workspace}:{args.dataset} is configured.")
        return 0
    print(f"Publishing failed, see {log_path}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
