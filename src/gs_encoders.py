"""
Descriptors for the GeoServer resources we configure, and their XML bodies.

A descriptor is built by the caller, serialized once by a manager call and
then dropped. Nothing here talks to the network.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Dict, Iterable, List, Mapping, Optional, Tuple, Union
from xml.etree.ElementTree import Element, SubElement, tostring


class Format(str, Enum):
    XML = "xml"
    JSON = "json"


class StoreType(str, Enum):
    """Store kind; the value is the REST URL segment."""
    DATASTORES = "datastores"
    COVERAGESTORES = "coveragestores"

    def __str__(self) -> str:
        return self.value

    @property
    def type_name(self) -> str:
        """Name of the resource collection hosted by this store kind."""
        return "featuretypes" if self is StoreType.DATASTORES else "coverages"

    def type_name_with_format(self, fmt: Format) -> str:
        return f"{self.type_name}.{Format(fmt).value}"


class UploadMethod(str, Enum):
    """
    How the shapefile reaches GeoServer. Lookup is case-insensitive:
    UploadMethod("FILE") is UploadMethod("file").
    """
    FILE = "file"
    URL = "url"
    EXTERNAL = "external"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for member in cls:
                if member.value == value.lower():
                    return member
        return None

    @classmethod
    def parse(cls, value: Union[str, "UploadMethod"]) -> "UploadMethod":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown upload method: {value!r}") from None

    @property
    def mime_type(self) -> str:
        if self is UploadMethod.EXTERNAL:
            return "text/plain"
        return "application/zip"


class ProjectionPolicy(str, Enum):
    FORCE_DECLARED = "FORCE_DECLARED"
    REPROJECT_TO_DECLARED = "REPROJECT_TO_DECLARED"
    NONE = "NONE"


def _add_text(parent: Element, tag: str, value) -> None:
    if value is None:
        return
    if isinstance(value, bool):
        value = "true" if value else "false"
    SubElement(parent, tag).text = str(value)


def _named(parent: Element, tag: str, name: str) -> None:
    SubElement(SubElement(parent, tag), "name").text = name


# ---------------------------------------------------------------------------
# Resources (feature types, coverages)
# ---------------------------------------------------------------------------

@dataclass
class ResourceDescriptor:
    """
    Common part of a feature type / coverage configuration.

    projection_policy may stay unset while the descriptor is being built, but
    an unknown policy string is rejected right away.
    """
    root_tag: ClassVar[str] = "resource"

    name: Optional[str] = None
    srs: Optional[str] = None
    native_crs: Optional[str] = None
    projection_policy: Optional[ProjectionPolicy] = None
    title: Optional[str] = None
    abstract: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    enabled: bool = True

    def __post_init__(self) -> None:
        if self.projection_policy is not None:
            self.projection_policy = ProjectionPolicy(self.projection_policy)

    def _extra_elements(self, root: Element) -> None:
        pass

    def to_element(self) -> Element:
        if not self.name:
            raise ValueError(f"Unable to encode an unnamed {self.root_tag}")

        root = Element(self.root_tag)
        _add_text(root, "name", self.name)
        self._extra_elements(root)
        _add_text(root, "title", self.title)
        _add_text(root, "abstract", self.abstract)
        if self.keywords:
            kw = SubElement(root, "keywords")
            for k in self.keywords:
                SubElement(kw, "string").text = k
        _add_text(root, "nativeCRS", self.native_crs)
        _add_text(root, "srs", self.srs)
        if self.projection_policy is not None:
            _add_text(root, "projectionPolicy", self.projection_policy.value)
        _add_text(root, "enabled", self.enabled)
        return root

    def to_xml(self) -> str:
        return tostring(self.to_element(), encoding="unicode")


@dataclass
class FeatureTypeDescriptor(ResourceDescriptor):
    root_tag: ClassVar[str] = "featureType"

    native_name: Optional[str] = None

    def _extra_elements(self, root: Element) -> None:
        _add_text(root, "nativeName", self.native_name)


@dataclass
class CoverageDescriptor(ResourceDescriptor):
    root_tag: ClassVar[str] = "coverage"

    native_format: Optional[str] = None

    def _extra_elements(self, root: Element) -> None:
        _add_text(root, "nativeFormat", self.native_format)


# ---------------------------------------------------------------------------
# Layers
# ---------------------------------------------------------------------------

@dataclass
class LayerDescriptor:
    """Publish-level attributes of a layer. Only the attributes that are set get sent."""
    default_style: Optional[str] = None
    styles: List[str] = field(default_factory=list)
    enabled: Optional[bool] = None
    queryable: Optional[bool] = None
    path: Optional[str] = None

    def is_empty(self) -> bool:
        return (
            self.default_style is None
            and not self.styles
            and self.enabled is None
            and self.queryable is None
            and self.path is None
        )

    def to_xml(self) -> str:
        root = Element("layer")
        _add_text(root, "path", self.path)
        if self.default_style is not None:
            _named(root, "defaultStyle", self.default_style)
        if self.styles:
            styles = SubElement(root, "styles")
            for s in self.styles:
                _named(styles, "style", s)
        _add_text(root, "enabled", self.enabled)
        _add_text(root, "queryable", self.queryable)
        return tostring(root, encoding="unicode")


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

StoreParams = Union[Mapping[str, str], Iterable[Tuple[str, str]], None]


@dataclass
class StoreDescriptor:
    store_type: ClassVar[StoreType] = StoreType.DATASTORES
    root_tag: ClassVar[str] = "dataStore"
    type: ClassVar[Optional[str]] = None

    name: Optional[str] = None
    description: Optional[str] = None
    enabled: bool = True

    def connection_parameters(self) -> Dict[str, str]:
        return {}

    def _extra_elements(self, root: Element) -> None:
        params = self.connection_parameters()
        if params:
            cp = SubElement(root, "connectionParameters")
            for key, value in params.items():
                entry = SubElement(cp, "entry", key=key)
                entry.text = value

    def to_xml(self) -> str:
        if not self.name:
            raise ValueError(f"Unable to encode an unnamed {self.root_tag}")
        root = Element(self.root_tag)
        _add_text(root, "name", self.name)
        _add_text(root, "description", self.description)
        _add_text(root, "type", self.type)
        _add_text(root, "enabled", self.enabled)
        self._extra_elements(root)
        return tostring(root, encoding="unicode")


@dataclass
class ShapefileStoreDescriptor(StoreDescriptor):
    """
    Shapefile-backed datastore. `params` are extra connection parameters
    supplied by the caller and override the defaults below.
    """
    type: ClassVar[Optional[str]] = "Shapefile"

    url: Optional[str] = None
    mime_type: Optional[str] = None
    charset: str = "UTF-8"
    params: StoreParams = None

    def __post_init__(self) -> None:
        self.params = {str(k): str(v) for k, v in dict(self.params or {}).items()}

    def connection_parameters(self) -> Dict[str, str]:
        cp = {"charset": self.charset, "create spatial index": "true"}
        if self.url:
            cp["url"] = self.url
        cp.update(self.params)
        return cp


@dataclass
class CoverageStoreDescriptor(StoreDescriptor):
    store_type: ClassVar[StoreType] = StoreType.COVERAGESTORES
    root_tag: ClassVar[str] = "coverageStore"

    url: Optional[str] = None
    format: str = "GeoTIFF"

    def _extra_elements(self, root: Element) -> None:
        # coverage stores carry type/url as plain elements
        _add_text(root, "type", self.format)
        _add_text(root, "url", self.url)
