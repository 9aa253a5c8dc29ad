"""Built-in image catalog offered to templates in basic mode."""

from __future__ import annotations

from enum import Enum
from typing import Dict

from pydantic import BaseModel


class OSType(str, Enum):
    """Guest operating system family."""

    LINUX = "Linux"
    WINDOWS = "Windows"


class LaunchMethod(str, Enum):
    """How the controller attaches to a freshly booted agent."""

    SSH = "SSH"
    JNLP = "JNLP"


class BuiltInImage(str, Enum):
    """Images available without specifying publisher/offer/sku."""

    WINDOWS_SERVER_2016 = "Windows Server 2016"
    UBUNTU_1604_LTS = "Ubuntu 16.04 LTS"


DEFAULT_BUILT_IN_IMAGE = BuiltInImage.WINDOWS_SERVER_2016


class CatalogImage(BaseModel):
    """Marketplace coordinates and launch defaults of a built-in image."""

    publisher: str
    offer: str
    sku: str
    version: str = "latest"
    os_type: OSType
    launch_method: LaunchMethod
    init_script: str = ""


_UBUNTU_INIT = """#!/bin/bash
set -e
apt-get -y update
apt-get install -y openjdk-8-jre-headless git
"""

_WINDOWS_INIT = """Set-ExecutionPolicy Unrestricted -Force
$source = "https://api.adoptopenjdk.net/v2/binary/releases/openjdk8?os=windows&arch=x64&type=jre"
$destination = "C:\\jre.zip"
Invoke-WebRequest -Uri $source -OutFile $destination
Expand-Archive -Path $destination -DestinationPath "C:\\Java"
"""

BUILT_IN_IMAGES: Dict[BuiltInImage, CatalogImage] = {
    BuiltInImage.WINDOWS_SERVER_2016: CatalogImage(
        publisher="MicrosoftWindowsServer",
        offer="WindowsServer",
        sku="2016-Datacenter",
        os_type=OSType.WINDOWS,
        launch_method=LaunchMethod.JNLP,
        init_script=_WINDOWS_INIT,
    ),
    BuiltInImage.UBUNTU_1604_LTS: CatalogImage(
        publisher="Canonical",
        offer="UbuntuServer",
        sku="16.04-LTS",
        os_type=OSType.LINUX,
        launch_method=LaunchMethod.SSH,
        init_script=_UBUNTU_INIT,
    ),
}


def parse_built_in_image(value: str) -> BuiltInImage:
    """Match a raw catalog name case-insensitively, defaulting to Windows Server 2016."""
    needle = (value or "").strip().lower()
    for image in BuiltInImage:
        if needle in (image.value.lower(), image.name.lower()):
            return image
    return DEFAULT_BUILT_IN_IMAGE


def lookup(image: BuiltInImage) -> CatalogImage:
    """Return the catalog entry for a built-in image."""
    return BUILT_IN_IMAGES[image]
