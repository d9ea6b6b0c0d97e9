"""A Linux VM reachable over SSH, with its own resource group and network."""

from typing import Optional

import pulumi
from pulumi_azure_native import compute, network, resources
from pulumi_random import RandomPet
from pulumi_tls import PrivateKey

from vm_settings import VmSettings, check_password

SSH_PORT = '22'
SSH_RULE_PRIORITY = 1001


class LinuxVm(pulumi.ComponentResource):
    resource_group: resources.ResourceGroup
    virtual_network: network.VirtualNetwork
    subnet: network.Subnet
    public_ip: network.PublicIPAddress
    network_security_group: network.NetworkSecurityGroup
    network_interface: network.NetworkInterface
    virtual_machine: compute.VirtualMachine
    ssh_private_key: Optional[pulumi.Output[str]]

    def __init__(
        self,
        name: str,
        settings: VmSettings,
        opts: Optional[pulumi.ResourceOptions] = None,
    ):
        super().__init__('tutorial:azure:LinuxVm', name, None, opts)

        self.name = name
        self.settings = settings
        # Fixed keys go last so stack tags cannot replace them.
        self.tags = {
            **settings.tags,
            'environment': pulumi.get_stack(),
            'managed-by': 'pulumi',
        }

        self._define_resource_group()
        self._define_network()
        self._define_security_group()
        self._define_network_interface()
        self._define_ssh_key()
        self._define_virtual_machine()

        self.public_ip_address = self.public_ip.ip_address
        self.ssh_command = pulumi.Output.concat(
            'ssh ',
            settings.admin_username,
            '@',
            self.public_ip_address,
        )

        self.register_outputs(
            {
                'resource_group_name': self.resource_group.name,
                'public_ip_address': self.public_ip_address,
                'ssh_command': self.ssh_command,
            }
        )

    def _child(self) -> pulumi.ResourceOptions:
        return pulumi.ResourceOptions(parent=self)

    def _define_resource_group(self):
        # Random suffix keeps group names unique across stacks and subscriptions.
        pet = RandomPet(
            f'{self.name}-rg-name',
            prefix=self.settings.resource_group_name_prefix,
            opts=self._child(),
        )

        self.resource_group = resources.ResourceGroup(
            f'{self.name}-rg',
            resource_group_name=pet.id,
            location=self.settings.location,
            tags=self.tags,
            opts=self._child(),
        )

    def _define_network(self):
        base = self.settings.base_name

        self.virtual_network = network.VirtualNetwork(
            f'{self.name}-vnet',
            virtual_network_name=f'{base}-vnet',
            resource_group_name=self.resource_group.name,
            location=self.resource_group.location,
            address_space=network.AddressSpaceArgs(
                address_prefixes=[self.settings.vnet_address_space],
            ),
            tags=self.tags,
            opts=self._child(),
        )

        self.subnet = network.Subnet(
            f'{self.name}-subnet',
            subnet_name=f'{base}-subnet',
            resource_group_name=self.resource_group.name,
            virtual_network_name=self.virtual_network.name,
            address_prefix=self.settings.subnet_address_prefix,
            opts=self._child(),
        )

        # Static allocation so the address is known as soon as `pulumi up` returns.
        self.public_ip = network.PublicIPAddress(
            f'{self.name}-pip',
            public_ip_address_name=f'{base}-pip',
            resource_group_name=self.resource_group.name,
            location=self.resource_group.location,
            public_ip_allocation_method=network.IPAllocationMethod.STATIC,
            sku=network.PublicIPAddressSkuArgs(
                name=network.PublicIPAddressSkuName.STANDARD,
            ),
            tags=self.tags,
            opts=self._child(),
        )

    def _define_security_group(self):
        source = self.settings.ssh_source_address_prefix
        if self.settings.ssh_open_to_internet:
            hint = 'set sshSourceAddressPrefix to your own address range to restrict it'
            pulumi.log.warn(f'SSH (port {SSH_PORT}) is open to {source!r}; {hint}', resource=self)

        ssh_rule = network.SecurityRuleArgs(
            name='SSH',
            priority=SSH_RULE_PRIORITY,
            direction=network.SecurityRuleDirection.INBOUND,
            access=network.SecurityRuleAccess.ALLOW,
            protocol=network.SecurityRuleProtocol.TCP,
            source_port_range='*',
            destination_port_range=SSH_PORT,
            source_address_prefix=source,
            destination_address_prefix='*',
        )

        self.network_security_group = network.NetworkSecurityGroup(
            f'{self.name}-nsg',
            network_security_group_name=f'{self.settings.base_name}-nsg',
            resource_group_name=self.resource_group.name,
            location=self.resource_group.location,
            security_rules=[ssh_rule],
            tags=self.tags,
            opts=self._child(),
        )

    def _define_network_interface(self):
        ip_configuration = network.NetworkInterfaceIPConfigurationArgs(
            name='ipconfig1',
            subnet=network.SubnetArgs(id=self.subnet.id),
            private_ip_allocation_method=network.IPAllocationMethod.DYNAMIC,
            public_ip_address=network.PublicIPAddressArgs(id=self.public_ip.id),
        )

        self.network_interface = network.NetworkInterface(
            f'{self.name}-nic',
            network_interface_name=f'{self.settings.base_name}-nic',
            resource_group_name=self.resource_group.name,
            location=self.resource_group.location,
            ip_configurations=[ip_configuration],
            network_security_group=network.NetworkSecurityGroupArgs(
                id=self.network_security_group.id,
            ),
            tags=self.tags,
            opts=self._child(),
        )

    def _define_ssh_key(self):
        if self.settings.ssh_public_key is not None:
            self.ssh_public_key = self.settings.ssh_public_key
            self.ssh_private_key = None
            return

        pulumi.log.info('No sshPublicKey configured, generating an RSA key pair', resource=self)
        key = PrivateKey(
            f'{self.name}-ssh-key',
            algorithm='RSA',
            rsa_bits=4096,
            opts=self._child(),
        )
        self.ssh_public_key = key.public_key_openssh
        self.ssh_private_key = pulumi.Output.secret(key.private_key_openssh)

    def _define_virtual_machine(self):
        settings = self.settings
        base = settings.base_name
        username = settings.admin_username

        admin_password = None
        if settings.admin_password is not None:
            admin_password = pulumi.Output.secret(settings.admin_password).apply(check_password)

        ssh_key = compute.SshPublicKeyArgs(
            key_data=self.ssh_public_key,
            path=f'/home/{username}/.ssh/authorized_keys',
        )
        os_profile = compute.OSProfileArgs(
            computer_name=base,
            admin_username=username,
            admin_password=admin_password,
            linux_configuration=compute.LinuxConfigurationArgs(
                disable_password_authentication=admin_password is None,
                ssh=compute.SshConfigurationArgs(public_keys=[ssh_key]),
            ),
        )
        storage_profile = compute.StorageProfileArgs(
            image_reference=compute.ImageReferenceArgs(
                publisher=settings.image.publisher,
                offer=settings.image.offer,
                sku=settings.image.sku,
                version=settings.image.version,
            ),
            os_disk=compute.OSDiskArgs(
                name=f'{base}-osdisk',
                create_option=compute.DiskCreateOptionTypes.FROM_IMAGE,
                caching=compute.CachingTypes.READ_WRITE,
                delete_option=compute.DiskDeleteOptionTypes.DELETE,
                managed_disk=compute.ManagedDiskParametersArgs(
                    storage_account_type=settings.os_disk_type,
                ),
            ),
        )

        nic_ref = compute.NetworkInterfaceReferenceArgs(id=self.network_interface.id, primary=True)

        self.virtual_machine = compute.VirtualMachine(
            f'{self.name}-vm',
            vm_name=f'{base}-vm',
            resource_group_name=self.resource_group.name,
            location=self.resource_group.location,
            hardware_profile=compute.HardwareProfileArgs(vm_size=settings.vm_size),
            network_profile=compute.NetworkProfileArgs(network_interfaces=[nic_ref]),
            os_profile=os_profile,
            storage_profile=storage_profile,
            tags=self.tags,
            opts=self._child(),
        )
