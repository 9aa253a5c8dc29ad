"""
Agent templates — how one class of build agent VM is provisioned.
"""

from .schema import (
    AgentTemplate,
    BasicImage,
    CustomImage,
    ExistingStorageAccount,
    NewStorageAccount,
    ReferenceImage,
    TemplateForm,
    TemplateProperties,
    resolve_template_properties,
)
from .registry import TemplateStore

__all__ = [
    "AgentTemplate",
    "BasicImage",
    "CustomImage",
    "ExistingStorageAccount",
    "NewStorageAccount",
    "ReferenceImage",
    "TemplateForm",
    "TemplateProperties",
    "TemplateStore",
    "resolve_template_properties",
]
