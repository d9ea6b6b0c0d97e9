"""Stack configuration for the Linux VM program.

Every key is optional. Values come from ``Pulumi.<stack>.yaml`` and are set with
``pulumi config set <key> <value>`` (add ``--secret`` for ``adminPassword`` and
``sshPublicKey``).
"""

import ipaddress
import re
from dataclasses import dataclass, field
from typing import Dict, Optional

import pulumi

# Names Azure refuses as the admin account of a VM.
# fmt: off
RESERVED_USERNAMES = frozenset([
    '1', '123', 'a', 'actuser', 'adm', 'admin', 'admin1', 'admin2',
    'administrator', 'aspnet', 'backup', 'console', 'david', 'guest', 'john',
    'owner', 'root', 'server', 'sql', 'support', 'support_388945a0', 'sys',
    'test', 'test1', 'test2', 'test3', 'user', 'user1', 'user2', 'user3',
    'user4', 'user5',
])

DISALLOWED_PASSWORDS = frozenset([
    'abc@123', 'iloveyou!', 'P@$$w0rd', 'P@ssw0rd', 'P@ssword123',
    'Pa$$word', 'pass@word1', 'Password!', 'Password1', 'Password22',
])
# fmt: on

OS_DISK_TYPES = ('Standard_LRS', 'StandardSSD_LRS', 'Premium_LRS', 'StandardSSD_ZRS', 'Premium_ZRS')

OPEN_SOURCES = ('*', 'Internet', '0.0.0.0/0', '::/0')

_BASE_NAME = re.compile(r'^[A-Za-z][A-Za-z0-9-]{0,49}$')
_SERVICE_TAG = re.compile(r'^[A-Za-z][A-Za-z.]*$')


class SettingsError(pulumi.RunError):
    """Stack configuration that Azure would reject."""


@dataclass
class ImageReference:
    publisher: str = 'Canonical'
    offer: str = '0001-com-ubuntu-server-jammy'
    sku: str = '22_04-lts-gen2'
    version: str = 'latest'


@dataclass
class VmSettings:
    location: str = 'eastus'
    resource_group_name_prefix: str = 'rg'
    base_name: str = 'tutorial'
    vm_size: str = 'Standard_B1s'
    admin_username: str = 'azureuser'
    admin_password: Optional[pulumi.Input[str]] = None
    ssh_public_key: Optional[pulumi.Input[str]] = None
    vnet_address_space: str = '10.0.0.0/16'
    subnet_address_prefix: str = '10.0.1.0/24'
    ssh_source_address_prefix: str = '*'
    os_disk_type: str = 'Premium_LRS'
    image: ImageReference = field(default_factory=ImageReference)
    tags: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: Optional[pulumi.Config] = None) -> 'VmSettings':
        """Build settings from the current stack's configuration."""
        config = config or pulumi.Config()
        defaults = cls()

        location = config.get('location') or pulumi.Config('azure-native').get('location')
        prefix = config.get('resourceGroupNamePrefix') or defaults.resource_group_name_prefix
        vnet = config.get('vnetAddressSpace') or defaults.vnet_address_space
        subnet = config.get('subnetAddressPrefix') or defaults.subnet_address_prefix
        ssh_source = config.get('sshSourceAddressPrefix') or defaults.ssh_source_address_prefix

        image = ImageReference(
            publisher=config.get('imagePublisher') or defaults.image.publisher,
            offer=config.get('imageOffer') or defaults.image.offer,
            sku=config.get('imageSku') or defaults.image.sku,
            version=config.get('imageVersion') or defaults.image.version,
        )

        settings = cls(
            location=location or defaults.location,
            resource_group_name_prefix=prefix,
            base_name=config.get('baseName') or defaults.base_name,
            vm_size=config.get('vmSize') or defaults.vm_size,
            admin_username=config.get('adminUsername') or defaults.admin_username,
            admin_password=config.get_secret('adminPassword'),
            ssh_public_key=config.get_secret('sshPublicKey'),
            vnet_address_space=vnet,
            subnet_address_prefix=subnet,
            ssh_source_address_prefix=ssh_source,
            os_disk_type=config.get('osDiskType') or defaults.os_disk_type,
            image=image,
            tags=config.get_object('tags') or {},
        )
        settings.validate()
        return settings

    def validate(self):
        if not _BASE_NAME.match(self.base_name):
            msg = 'must start with a letter and contain only letters, digits and hyphens (max 50)'
            raise SettingsError(f'baseName {self.base_name!r} {msg}')

        check_username(self.admin_username)

        if not self.vm_size.startswith(('Standard_', 'Basic_')):
            raise SettingsError(f'vmSize {self.vm_size!r} is not an Azure VM size')

        if self.os_disk_type not in OS_DISK_TYPES:
            choices = ', '.join(OS_DISK_TYPES)
            raise SettingsError(f'osDiskType {self.os_disk_type!r} must be one of {choices}')

        vnet = _network('vnetAddressSpace', self.vnet_address_space)
        subnet = _network('subnetAddressPrefix', self.subnet_address_prefix)
        if vnet.version != subnet.version or not subnet.subnet_of(vnet):
            msg = f'subnetAddressPrefix {subnet} is not inside vnetAddressSpace {vnet}'
            raise SettingsError(msg)

        source = self.ssh_source_address_prefix
        if source != '*' and not _SERVICE_TAG.match(source):
            try:
                ipaddress.ip_network(source, strict=False)
            except ValueError as e:
                raise SettingsError(f'sshSourceAddressPrefix {source!r}: {e}') from e

    @property
    def ssh_open_to_internet(self) -> bool:
        return self.ssh_source_address_prefix in OPEN_SOURCES


def check_username(username: str) -> str:
    if not 1 <= len(username) <= 64:
        raise SettingsError('adminUsername must be 1 to 64 characters long')
    if username.endswith('.'):
        raise SettingsError('adminUsername cannot end with "."')
    if username.lower() in RESERVED_USERNAMES:
        raise SettingsError(f'adminUsername {username!r} is reserved by Azure')
    return username


def check_password(password: str) -> str:
    """Validate an admin password against Azure's Linux VM rules.

    Returns the password unchanged so it can be used inside ``Output.apply``.
    Error messages never include the password itself.
    """
    if not 6 <= len(password) <= 72:
        raise SettingsError('adminPassword must be 6 to 72 characters long')
    classes = [
        any(c.islower() for c in password),
        any(c.isupper() for c in password),
        any(c.isdigit() for c in password),
        any(not c.isalnum() for c in password),
    ]
    if sum(classes) < 3:
        raise SettingsError('adminPassword needs three of: lowercase, uppercase, digit, special')
    if password in DISALLOWED_PASSWORDS:
        raise SettingsError('adminPassword is on the list of disallowed passwords')
    return password


def _network(key, value):
    try:
        return ipaddress.ip_network(value, strict=True)
    except ValueError as e:
        raise SettingsError(f'{key} {value!r}: {e}') from e
