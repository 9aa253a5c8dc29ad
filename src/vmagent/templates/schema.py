"""
Pydantic models for build agent VM templates.

Raw operator input arrives as a flat ``TemplateForm`` of strings and
flags. ``AgentTemplate.from_form`` resolves it into an immutable record in
which every tagged choice is an explicit variant carrying only the
fields that variant needs:

- image: basic (built-in catalog) | reference (publisher/offer/sku/version)
  | custom (direct image URI)
- storage account: new | existing

``resolve_template_properties`` flattens a resolved template into the
exact field set handed to the provisioning service, so a template entered
through the basic path verifies identically to its advanced equivalent.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, FrozenSet, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from .. import naming
from .catalog import (
    DEFAULT_BUILT_IN_IMAGE,
    BuiltInImage,
    LaunchMethod,
    OSType,
    lookup,
    parse_built_in_image,
)

DEFAULT_NO_OF_PARALLEL_JOBS = 1
DEFAULT_RETENTION_TIME_IN_MIN = 60

_DIGITS = re.compile(r"^\d+$")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class UsageMode(str, Enum):
    """How the scheduler may place builds on agents from a template."""

    NORMAL = "normal"
    EXCLUSIVE = "exclusive"

    @property
    def description(self) -> str:
        return {
            UsageMode.NORMAL: "Use this node as much as possible",
            UsageMode.EXCLUSIVE: "Only build jobs with label expressions matching this node",
        }[self]


class StorageSku(str, Enum):
    """Redundancy tier of the storage account backing agent disks."""

    STANDARD_LRS = "Standard_LRS"
    PREMIUM_LRS = "Premium_LRS"


def parse_usage_mode(value: Optional[str]) -> UsageMode:
    """Case-insensitive match on value or description; ``normal`` otherwise."""
    needle = (value or "").strip().lower()
    for mode in UsageMode:
        if needle in (mode.value, mode.description.lower()):
            return mode
    return UsageMode.NORMAL


def parse_storage_sku(value: Optional[str]) -> StorageSku:
    """Case-insensitive SKU lookup; blank or unknown becomes Standard_LRS."""
    needle = (value or "").strip().lower()
    for sku in StorageSku:
        if needle == sku.value.lower():
            return sku
    return StorageSku.STANDARD_LRS


def parse_launch_method(value: Optional[str]) -> LaunchMethod:
    """Case-insensitive launch method lookup; SSH otherwise."""
    needle = (value or "").strip().upper()
    for method in LaunchMethod:
        if needle == method.value:
            return method
    return LaunchMethod.SSH


def parse_os_type(value: Optional[str]) -> OSType:
    """Case-insensitive OS lookup; Linux otherwise."""
    needle = (value or "").strip().lower()
    for os_type in OSType:
        if needle == os_type.value.lower():
            return os_type
    return OSType.LINUX


def parse_positive_int(value: Optional[str], default: int) -> int:
    """Parse a digit-only string, substituting ``default`` for blank, junk, or zero."""
    text = (value or "").strip()
    if not _DIGITS.match(text) or int(text) == 0:
        return default
    return int(text)


def parse_labels(labels: Optional[str]) -> FrozenSet[str]:
    """Split a label expression into whitespace-delimited tokens."""
    return frozenset((labels or "").split())


# ---------------------------------------------------------------------------
# Image variants
# ---------------------------------------------------------------------------

class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class BasicImage(_Frozen):
    """An image from the built-in catalog."""

    kind: Literal["basic"] = "basic"
    built_in_image: BuiltInImage = DEFAULT_BUILT_IN_IMAGE


class ReferenceImage(_Frozen):
    """A marketplace image given by its full coordinates."""

    kind: Literal["reference"] = "reference"
    publisher: str = ""
    offer: str = ""
    sku: str = ""
    version: str = ""
    os_type: OSType = OSType.LINUX


class CustomImage(_Frozen):
    """A managed or uploaded image referenced directly."""

    kind: Literal["custom"] = "custom"
    uri: str
    os_type: OSType = OSType.LINUX


ImageChoice = Annotated[
    Union[BasicImage, ReferenceImage, CustomImage],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Storage variants
# ---------------------------------------------------------------------------

class NewStorageAccount(_Frozen):
    """A storage account the provisioning service creates on demand."""

    kind: Literal["new"] = "new"
    name: str = ""


class ExistingStorageAccount(_Frozen):
    """A storage account that must already exist."""

    kind: Literal["existing"] = "existing"
    name: str = ""


StorageChoice = Annotated[
    Union[NewStorageAccount, ExistingStorageAccount],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Sub-records
# ---------------------------------------------------------------------------

class NetworkPlacement(_Frozen):
    """Optional virtual network placement. Empty means provider defaults."""

    virtual_network_name: str = ""
    virtual_network_resource_group_name: str = ""
    subnet_name: str = ""
    use_private_ip: bool = False
    nsg_name: str = ""

    @property
    def is_default(self) -> bool:
        """True when no placement setting deviates from the defaults."""
        return not (
            self.virtual_network_name
            or self.virtual_network_resource_group_name
            or self.subnet_name
            or self.use_private_ip
            or self.nsg_name
        )


class LaunchConfig(_Frozen):
    """How an agent is started and prepared once its VM boots."""

    launch_method: LaunchMethod = LaunchMethod.SSH
    init_script: str = ""
    execute_init_script_as_root: bool = False
    do_not_use_machine_if_init_fails: bool = False
    agent_workspace: str = ""
    jvm_options: str = ""
    credentials_id: str = ""


# ---------------------------------------------------------------------------
# Raw input
# ---------------------------------------------------------------------------

class TemplateForm(BaseModel):
    """Unresolved template configuration, as typed in by an operator.

    Every field is a plain string or flag. Nothing here is validated;
    ``AgentTemplate.from_form`` substitutes defaults for anything unusable.
    """

    model_config = ConfigDict(extra="ignore")

    template_name: str = ""
    template_desc: str = ""
    labels: str = ""
    location: str = ""
    virtual_machine_size: str = ""
    storage_account_name_reference_type: str = ""
    storage_account_type: str = ""
    new_storage_account_name: str = ""
    existing_storage_account_name: str = ""
    no_of_parallel_jobs: str = ""
    usage_mode: str = ""
    built_in_image: str = ""
    os_type: str = ""
    image_top_level_type: str = ""
    image: str = ""
    image_publisher: str = ""
    image_offer: str = ""
    image_sku: str = ""
    image_version: str = ""
    agent_launch_method: str = ""
    init_script: str = ""
    credentials_id: str = ""
    virtual_network_name: str = ""
    virtual_network_resource_group_name: str = ""
    subnet_name: str = ""
    use_private_ip: bool = False
    nsg_name: str = ""
    agent_workspace: str = ""
    jvm_options: str = ""
    retention_time_in_min: str = ""
    shutdown_on_idle: bool = False
    template_disabled: bool = False
    execute_init_script_as_root: bool = False
    do_not_use_machine_if_init_fails: bool = False

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_scalars(cls, value: Any, info: ValidationInfo) -> Any:
        """Accept None and bare numbers from hand-written YAML records."""
        is_flag = cls.model_fields[info.field_name].annotation is bool
        if value is None:
            return False if is_flag else ""
        if not is_flag and isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


# ---------------------------------------------------------------------------
# Resolved template
# ---------------------------------------------------------------------------

class AgentTemplate(_Frozen):
    """A resolved, immutable agent template.

    Runtime state (verification flag, status text) lives in
    ``vmagent.verification.TemplateStatus``; the owning cloud context keeps
    the template, never the other way round.

    Instances are safe to read from several threads. Nothing mutates them;
    changes produce a new instance via ``model_copy``.
    """

    template_name: str
    template_desc: str = ""
    labels: str = ""
    location: str = ""
    virtual_machine_size: str = ""

    image: ImageChoice = Field(default_factory=BasicImage)
    storage: StorageChoice = Field(default_factory=ExistingStorageAccount)
    storage_account_type: StorageSku = StorageSku.STANDARD_LRS
    network: NetworkPlacement = Field(default_factory=NetworkPlacement)
    launch: LaunchConfig = Field(default_factory=LaunchConfig)

    no_of_parallel_jobs: int = Field(default=DEFAULT_NO_OF_PARALLEL_JOBS, ge=1)
    retention_time_in_min: int = Field(default=DEFAULT_RETENTION_TIME_IN_MIN, ge=0)
    shutdown_on_idle: bool = False
    template_disabled: bool = False
    usage_mode: UsageMode = UsageMode.NORMAL

    # -- construction -------------------------------------------------------

    @classmethod
    def from_form(cls, form: TemplateForm) -> "AgentTemplate":
        """Resolve raw operator input. Never raises for bad values."""
        top_level = naming.resolve_image_top_level_type(
            form.image_top_level_type,
            form.image, form.image_publisher, form.image_offer, form.image_sku,
        )
        image: Union[BasicImage, ReferenceImage, CustomImage]
        if top_level == naming.IMAGE_TOP_LEVEL_BASIC:
            image = BasicImage(built_in_image=parse_built_in_image(form.built_in_image))
        elif naming.resolve_image_reference_type(form.image) == naming.IMAGE_CUSTOM:
            image = CustomImage(uri=form.image.strip(), os_type=parse_os_type(form.os_type))
        else:
            image = ReferenceImage(
                publisher=form.image_publisher.strip(),
                offer=form.image_offer.strip(),
                sku=form.image_sku.strip(),
                version=form.image_version.strip(),
                os_type=parse_os_type(form.os_type),
            )

        storage_name = naming.resolve_storage_account_name(
            form.storage_account_name_reference_type,
            form.new_storage_account_name,
            form.existing_storage_account_name,
        ).strip()
        storage_kind = naming.resolve_storage_reference_type(
            form.storage_account_name_reference_type, form.new_storage_account_name,
        )
        storage: Union[NewStorageAccount, ExistingStorageAccount]
        if storage_kind == naming.REFERENCE_TYPE_NEW:
            storage = NewStorageAccount(name=storage_name)
        else:
            storage = ExistingStorageAccount(name=storage_name)

        return cls(
            template_name=form.template_name.strip(),
            template_desc=form.template_desc,
            labels=form.labels.strip(),
            location=form.location.strip(),
            virtual_machine_size=form.virtual_machine_size.strip(),
            image=image,
            storage=storage,
            storage_account_type=parse_storage_sku(form.storage_account_type),
            network=NetworkPlacement(
                virtual_network_name=form.virtual_network_name.strip(),
                virtual_network_resource_group_name=form.virtual_network_resource_group_name.strip(),
                subnet_name=form.subnet_name.strip(),
                use_private_ip=form.use_private_ip,
                nsg_name=form.nsg_name.strip(),
            ),
            launch=LaunchConfig(
                launch_method=parse_launch_method(form.agent_launch_method),
                init_script=form.init_script,
                execute_init_script_as_root=form.execute_init_script_as_root,
                do_not_use_machine_if_init_fails=form.do_not_use_machine_if_init_fails,
                agent_workspace=form.agent_workspace.strip(),
                jvm_options=form.jvm_options.strip(),
                credentials_id=form.credentials_id.strip(),
            ),
            no_of_parallel_jobs=parse_positive_int(
                form.no_of_parallel_jobs, DEFAULT_NO_OF_PARALLEL_JOBS,
            ),
            retention_time_in_min=parse_positive_int(
                form.retention_time_in_min, DEFAULT_RETENTION_TIME_IN_MIN,
            ),
            shutdown_on_idle=form.shutdown_on_idle,
            template_disabled=form.template_disabled,
            usage_mode=parse_usage_mode(form.usage_mode),
        )

    def to_form(self) -> TemplateForm:
        """Flatten back into raw form fields. ``from_form(to_form())`` is lossless."""
        image_fields = {"image_top_level_type": self.image_top_level_type}
        if isinstance(self.image, BasicImage):
            image_fields["built_in_image"] = self.image.built_in_image.value
        elif isinstance(self.image, CustomImage):
            image_fields.update(image=self.image.uri, os_type=self.image.os_type.value)
        else:
            image_fields.update(
                image_publisher=self.image.publisher,
                image_offer=self.image.offer,
                image_sku=self.image.sku,
                image_version=self.image.version,
                os_type=self.image.os_type.value,
            )

        storage_fields = {"storage_account_name_reference_type": self.storage.kind}
        if isinstance(self.storage, NewStorageAccount):
            storage_fields["new_storage_account_name"] = self.storage.name
        else:
            storage_fields["existing_storage_account_name"] = self.storage.name

        return TemplateForm(
            template_name=self.template_name,
            template_desc=self.template_desc,
            labels=self.labels,
            location=self.location,
            virtual_machine_size=self.virtual_machine_size,
            storage_account_type=self.storage_account_type.value,
            no_of_parallel_jobs=str(self.no_of_parallel_jobs),
            usage_mode=self.usage_mode.value,
            agent_launch_method=self.launch.launch_method.value,
            init_script=self.launch.init_script,
            credentials_id=self.launch.credentials_id,
            virtual_network_name=self.network.virtual_network_name,
            virtual_network_resource_group_name=self.network.virtual_network_resource_group_name,
            subnet_name=self.network.subnet_name,
            use_private_ip=self.network.use_private_ip,
            nsg_name=self.network.nsg_name,
            agent_workspace=self.launch.agent_workspace,
            jvm_options=self.launch.jvm_options,
            retention_time_in_min=str(self.retention_time_in_min),
            shutdown_on_idle=self.shutdown_on_idle,
            template_disabled=self.template_disabled,
            execute_init_script_as_root=self.launch.execute_init_script_as_root,
            do_not_use_machine_if_init_fails=self.launch.do_not_use_machine_if_init_fails,
            **image_fields,
            **storage_fields,
        )

    def with_storage_account(self, name: str) -> "AgentTemplate":
        """Return a copy that creates a new storage account called ``name``."""
        return self.model_copy(update={"storage": NewStorageAccount(name=name)})

    # -- derived views ------------------------------------------------------

    @property
    def label_set(self) -> FrozenSet[str]:
        """Label tokens used for scheduling matches."""
        return parse_labels(self.labels)

    @property
    def storage_account_name(self) -> str:
        return self.storage.name

    @property
    def storage_account_name_reference_type(self) -> str:
        return self.storage.kind

    @property
    def image_top_level_type(self) -> str:
        if isinstance(self.image, BasicImage):
            return naming.IMAGE_TOP_LEVEL_BASIC
        return naming.IMAGE_TOP_LEVEL_ADVANCED

    @property
    def image_reference_type(self) -> Optional[str]:
        """``custom`` or ``reference`` for advanced images, None for basic."""
        if isinstance(self.image, BasicImage):
            return None
        return self.image.kind


class TemplateProperties(_Frozen):
    """Every resolved field the provisioning service needs, flattened."""

    template_name: str
    labels: str = ""
    location: str = ""
    virtual_machine_size: str = ""
    storage_account_name: str = ""
    storage_account_type: StorageSku = StorageSku.STANDARD_LRS
    no_of_parallel_jobs: int = DEFAULT_NO_OF_PARALLEL_JOBS
    usage_mode: UsageMode = UsageMode.NORMAL
    image_top_level_type: str = naming.IMAGE_TOP_LEVEL_BASIC
    image_reference_type: Optional[str] = None
    built_in_image: Optional[BuiltInImage] = None
    image: str = ""
    os_type: OSType = OSType.LINUX
    image_publisher: str = ""
    image_offer: str = ""
    image_sku: str = ""
    image_version: str = ""
    agent_launch_method: LaunchMethod = LaunchMethod.SSH
    init_script: str = ""
    credentials_id: str = ""
    virtual_network_name: str = ""
    virtual_network_resource_group_name: str = ""
    subnet_name: str = ""
    use_private_ip: bool = False
    nsg_name: str = ""
    agent_workspace: str = ""
    jvm_options: str = ""
    retention_time_in_min: int = DEFAULT_RETENTION_TIME_IN_MIN
    resource_group_name: str = ""
    template_disabled: bool = False
    execute_init_script_as_root: bool = False
    do_not_use_machine_if_init_fails: bool = False


def resolve_template_properties(
    template: AgentTemplate, resource_group_name: str = "",
) -> TemplateProperties:
    """Flatten a template into the field set sent to the provisioning service.

    Basic templates take their image coordinates, OS, launch method and init
    script from the built-in catalog and ignore every advanced-only setting.

    Args:
        template: The resolved template.
        resource_group_name: Resource group of the owning cloud context.

    Returns:
        TemplateProperties ready for verification or deployment.
    """
    common = dict(
        template_name=template.template_name,
        labels=template.labels,
        location=template.location,
        virtual_machine_size=template.virtual_machine_size,
        storage_account_name=template.storage_account_name,
        storage_account_type=template.storage_account_type,
        usage_mode=template.usage_mode,
        image_top_level_type=template.image_top_level_type,
        image_reference_type=template.image_reference_type,
        credentials_id=template.launch.credentials_id,
        agent_workspace=template.launch.agent_workspace,
        retention_time_in_min=template.retention_time_in_min,
        resource_group_name=resource_group_name,
    )

    if isinstance(template.image, BasicImage):
        entry = lookup(template.image.built_in_image)
        return TemplateProperties(
            built_in_image=template.image.built_in_image,
            image_publisher=entry.publisher,
            image_offer=entry.offer,
            image_sku=entry.sku,
            image_version=entry.version,
            os_type=entry.os_type,
            agent_launch_method=entry.launch_method,
            init_script=entry.init_script,
            no_of_parallel_jobs=DEFAULT_NO_OF_PARALLEL_JOBS,
            execute_init_script_as_root=True,
            do_not_use_machine_if_init_fails=True,
            **common,
        )

    image_fields = {"os_type": template.image.os_type}
    if isinstance(template.image, CustomImage):
        image_fields["image"] = template.image.uri
    else:
        image_fields.update(
            image_publisher=template.image.publisher,
            image_offer=template.image.offer,
            image_sku=template.image.sku,
            image_version=template.image.version,
        )

    return TemplateProperties(
        agent_launch_method=template.launch.launch_method,
        init_script=template.launch.init_script,
        no_of_parallel_jobs=template.no_of_parallel_jobs,
        virtual_network_name=template.network.virtual_network_name,
        virtual_network_resource_group_name=template.network.virtual_network_resource_group_name,
        subnet_name=template.network.subnet_name,
        use_private_ip=template.network.use_private_ip,
        nsg_name=template.network.nsg_name,
        jvm_options=template.launch.jvm_options,
        template_disabled=template.template_disabled,
        execute_init_script_as_root=template.launch.execute_init_script_as_root,
        do_not_use_machine_if_init_fails=template.launch.do_not_use_machine_if_init_fails,
        **image_fields,
        **common,
    )
