# SPDX-License-Identifier: GPL-3.0-or-later
# This file is part of LabVoyager.
#
# LabVoyager is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# LabVoyager is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with LabVoyager.  If not, see <https://www.gnu.org/licenses/>.

# NSX 覆盖网络：Manager 部署、VTEP 底座、注册到新 vCenter
from __future__ import annotations

from typing import Dict

from labvoyager.common.network_utils import synthesize_host_address
from labvoyager.common.timing import VM
from labvoyager.core.deployment.progress import stage_logger_for
from labvoyager.core.deployment.runtime_context import RunContext
from labvoyager.core.deployment.stage_manager import Stage, stage_handler
from labvoyager.models.lab_models import LabInput


def overlay_manager_properties(lab: LabInput) -> Dict[str, str]:
    overlay = lab.overlay
    network = lab.guest_network
    return {
        "vsm_cli_passwd_0": overlay.admin_password,
        "vsm_cli_en_passwd_0": overlay.enable_password,
        "vsm_hostname": overlay.hostname,
        "vsm_ip_0": str(overlay.ip_address),
        "vsm_netmask_0": str(network.netmask),
        "vsm_gateway_0": str(network.gateway),
        "vsm_dns1_0": str(network.dns_servers[0]),
        "vsm_domain_0": network.domain,
        "vsm_ntp_0": network.ntp_server,
        "vsm_isSSHEnabled": "True" if overlay.enable_ssh else "False",
    }


def lookup_service_url(address: str) -> str:
    return f"https://{address}:443/lookupservice/sdk"


@stage_handler(Stage.deploy_overlay_manager_vm)
def run_deploy_overlay_manager_vm_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.deploy_overlay_manager_vm)
    overlay = ctx.lab.overlay
    plan = ctx.plan
    volume = plan.storage.select_volume_with_most_free_space()

    with ctx.timer.measure(overlay.display_name, category=VM):
        vm = ctx.infra.import_ova(
            overlay.image_path,
            name=overlay.display_name,
            placement=ctx.facts.placement,
            datastore=volume.ref,
            network=plan.network.ref,
            properties=overlay_manager_properties(ctx.lab),
        )
        ctx.infra.reconfigure_vm(vm, vcpu=overlay.vcpu, memory_gb=overlay.memory_gb)
        ctx.infra.power_on(vm)
    ctx.deployed_vms[overlay.display_name] = vm
    stage_logger.info("NSX Manager %s 已开机", overlay.display_name, progress_extra={"ip": str(overlay.ip_address)})


@stage_handler(Stage.setup_overlay_fabric)
def run_setup_overlay_fabric_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.setup_overlay_fabric)
    fabric = ctx.lab.overlay.fabric
    infra = ctx.infra

    switch = infra.create_distributed_switch(ctx.new_domain["datacenter"], fabric.switch_name, mtu=fabric.mtu)
    portgroup = infra.create_dvportgroup(switch, fabric.portgroup_name)
    stage_logger.info("已创建分布式交换机 %s 与端口组 %s", fabric.switch_name, fabric.portgroup_name)

    netmask = str(fabric.subnet.netmask)
    for name in sorted(ctx.admitted_hosts):
        host = ctx.admitted_hosts[name]
        node = ctx.plan.node(name)
        infra.add_host_to_distributed_switch(switch, host, fabric.uplink_nic)
        address = synthesize_host_address(str(fabric.subnet), node.ip_address)
        infra.add_vmkernel_interface(host, switch, portgroup, ip_address=address, netmask=netmask, mtu=fabric.mtu)
        stage_logger.info("主机 %s VTEP 地址 %s", name, address)


@stage_handler(Stage.register_overlay_manager)
def run_register_overlay_manager_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.register_overlay_manager)
    overlay = ctx.lab.overlay
    appliance = ctx.lab.appliance
    vc_address = appliance.hostname

    thumbprint = ctx.services.fetch_thumbprint(vc_address)
    client = ctx.services.connect_overlay_manager(str(overlay.ip_address), overlay.username, overlay.admin_password)
    try:
        client.register_management_domain(
            vc_address=vc_address,
            username=appliance.administrator,
            password=appliance.sso_password,
            thumbprint=thumbprint,
        )
        client.register_identity_authority(
            lookup_service_url=lookup_service_url(vc_address),
            username=appliance.administrator,
            password=appliance.sso_password,
            thumbprint=thumbprint,
        )
    finally:
        client.disconnect()
    stage_logger.info("NSX Manager 已注册到 %s", vc_address)
