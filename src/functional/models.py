"""
Functional test result structures
"""

from dataclasses import dataclass, field
from typing import Optional

from discovery.models import DeviceRecord, NetworkAddress

@dataclass(frozen=True)
class ApiTestResult:
    """Outcome of one API endpoint probe"""
    success: bool
    raw_response: str = ""
    response_is_valid_json: bool = False

    @classmethod
    def failed(cls) -> "ApiTestResult":
        return cls(success=False)

@dataclass
class TestResult:
    """Endpoint matrix results for one device"""
    __test__ = False  # not a pytest test class

    address: NetworkAddress
    ping_success: bool = False
    main_page_accessible: bool = False
    api_status: ApiTestResult = field(default_factory=ApiTestResult.failed)
    api_system: ApiTestResult = field(default_factory=ApiTestResult.failed)
    api_wifi: ApiTestResult = field(default_factory=ApiTestResult.failed)
    led_control_ok: bool = False
    relay_control_ok: bool = False
    device_status: Optional[DeviceRecord] = None

    def is_fully_functional(self) -> bool:
        # wifi/system/LED/relay are reported but never part of the aggregate
        return self.ping_success and self.main_page_accessible and self.api_status.success
