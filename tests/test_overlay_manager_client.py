import xml.etree.ElementTree as ET

import httpx
import pytest

from labvoyager.common.errors import ExternalOperationError
from labvoyager.integrations.overlay.manager_client import (
    GLOBAL_INFO_PATH,
    SSOCONFIG_PATH,
    VCCONFIG_PATH,
    OverlayManagerClient,
)


def _transport(requests, status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status, text="<ok/>")

    return httpx.MockTransport(handler)


def test_connect_authenticates_with_basic_auth():
    requests = []

    client = OverlayManagerClient.connect("10.0.0.30", "admin", "NsxPass1!", transport=_transport(requests))
    client.disconnect()

    assert requests[0].method == "GET"
    assert requests[0].url.path == GLOBAL_INFO_PATH
    assert requests[0].url.host == "10.0.0.30"
    assert requests[0].headers["Authorization"].startswith("Basic ")


def test_register_management_domain_and_identity_authority():
    requests = []
    client = OverlayManagerClient("10.0.0.30", "admin", "x", transport=_transport(requests))

    client.register_management_domain(
        vc_address="vcsa.lab.local",
        username="administrator@vsphere.local",
        password="SsoPass1!",
        thumbprint="AA:BB",
    )
    client.register_identity_authority(
        lookup_service_url="https://vcsa.lab.local:443/lookupservice/sdk",
        username="administrator@vsphere.local",
        password="SsoPass1!",
        thumbprint="AA:BB",
    )

    vc_request, sso_request = requests
    assert (vc_request.method, vc_request.url.path) == ("PUT", VCCONFIG_PATH)
    vc_info = ET.fromstring(vc_request.content)
    assert vc_info.tag == "vcInfo"
    assert vc_info.findtext("ipAddress") == "vcsa.lab.local"
    assert vc_info.findtext("certificateThumbprint") == "AA:BB"
    assert vc_request.headers["Content-Type"] == "application/xml"

    assert (sso_request.method, sso_request.url.path) == ("POST", SSOCONFIG_PATH)
    sso = ET.fromstring(sso_request.content)
    assert sso.findtext("ssoLookupServiceUrl") == "https://vcsa.lab.local:443/lookupservice/sdk"
    assert sso.findtext("ssoAdminUsername") == "administrator@vsphere.local"


def test_error_status_raises_external_operation_error():
    client = OverlayManagerClient("10.0.0.30", "admin", "bad", transport=_transport([], status=403))

    with pytest.raises(ExternalOperationError, match="403"):
        client.authenticate()
