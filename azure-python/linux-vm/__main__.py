"""Provisions a single Ubuntu VM reachable over SSH."""

import pulumi

from linux_vm import LinuxVm
from vm_settings import VmSettings

settings = VmSettings.from_config()
vm = LinuxVm('tutorial', settings)

pulumi.export('resource_group_name', vm.resource_group.name)
pulumi.export('public_ip_address', vm.public_ip_address)
pulumi.export('ssh_command', vm.ssh_command)

# Only exported when the key pair was generated by this program.
# Read it with: pulumi stack output ssh_private_key --show-secrets
if vm.ssh_private_key is not None:
    pulumi.export('ssh_private_key', vm.ssh_private_key)
