"""Shared fixtures: sample schemas and fake collaborators."""

from typing import Any, Dict, List, Optional

import pytest

from campaign_client.dom import DomUtil
from campaign_client.exceptions import CampaignException

RECIPIENT_SCHEMA = """
<schema namespace="nms" name="recipient" label="Recipients" labelSingular="Recipient"
        mappingType="sql" md5="a1b2" implements="xtk:persist">
  <enumeration name="gender" basetype="byte" default="0">
    <value name="unknown" label="None specified" value="0"/>
    <value name="male" label="Male" value="1"/>
    <value name="female" label="Female" value="2"/>
  </enumeration>
  <enumeration name="status" basetype="byte">
    <value name="active" label="Active"/>
    <value name="inactive" label="Inactive"/>
    <value name="blocked" label="Blocked" value="10" img="nms:blocked.png"/>
    <value name="deleted" label="Deleted"/>
  </enumeration>
  <element name="recipient" label="Recipients">
    <key name="email">
      <keyfield xpath="@email"/>
    </key>
    <key name="id" internal="true">
      <keyfield xpath="@id"/>
    </key>
    <attribute name="id" type="long" label="Primary key"/>
    <attribute name="email" type="string" label="Email" length="80" notNull="true"/>
    <attribute name="gender" type="byte" enum="gender" default="0"/>
    <attribute name="fullName" type="string" expr="@lastName + ' ' + @firstName"/>
    <attribute name="folder-id" type="long"/>
    <element name="country" label="Country">
      <attribute name="isoA3" type="string" label="ISO code"/>
    </element>
    <element name="myAddress" ref="address"/>
    <element name="folder" type="link" target="xtk:folder" revLink="recipient">
      <join xpath-src="@folder-id" xpath-dst="@id"/>
    </element>
    <element name="badLink" type="link" target="xtk:folder,nms:group"/>
    <element name="unqualifiedLink" type="link" target="folder"/>
    <element name="missingLink" type="link" target="nms:doesNotExist">
      <join xpath-src="@id" xpath-dst="@id"/>
    </element>
    <element name="badRef" ref="nms:recipient"/>
    <element name="folderRef" ref="xtk:folder:folder"/>
  </element>
  <element name="address" label="Address">
    <attribute name="line1" type="string"/>
    <element name="country">
      <attribute name="name" type="string" label="Country name"/>
    </element>
  </element>
</schema>
"""

FOLDER_SCHEMA = """
<schema namespace="xtk" name="folder" label="Folders">
  <element name="folder" label="Folders">
    <compute-string expr="@label"/>
    <attribute name="id" type="long"/>
    <attribute name="label" type="string" label="Label"/>
    <element name="recipient" type="link" target="nms:recipient" revLink="folder" unbound="true">
      <join xpath-src="@id" xpath-dst="@folder-id"/>
    </element>
  </element>
</schema>
"""

SESSION_SCHEMA = """
<schema namespace="xtk" name="session" label="Session">
  <interface name="persist">
    <method name="Write" static="true">
      <parameters>
        <param name="doc" type="DOMDocument"/>
      </parameters>
    </method>
    <method name="Delete">
      <parameters>
        <param name="entity" type="DOMElement"/>
      </parameters>
    </method>
  </interface>
  <methods>
    <method name="Logon" static="true"/>
    <method name="GetOption" static="true">
      <parameters>
        <param name="name" type="string"/>
        <param name="value" type="string" inout="out"/>
        <param name="type" type="byte" inout="out"/>
      </parameters>
    </method>
    <method name="GetModifiedEntities" static="true"/>
  </methods>
</schema>
"""

DELIVERY_SCHEMA = """
<schema namespace="nms" name="delivery" label="Deliveries" implements="xtk:persist">
  <element name="delivery" label="Deliveries">
    <attribute name="id" type="long"/>
    <attribute name="label" type="string"/>
  </element>
  <methods>
    <method name="Prepare"/>
  </methods>
</schema>
"""

SCHEMAS = {
    "nms:recipient": RECIPIENT_SCHEMA,
    "xtk:folder": FOLDER_SCHEMA,
    "xtk:session": SESSION_SCHEMA,
    "nms:delivery": DELIVERY_SCHEMA,
}


class FakeClock:
    """Manually advanced clock (epoch seconds)."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFetcher:
    """Schema fetcher returning a fresh parsed copy of known schemas."""

    def __init__(self, schemas: Optional[Dict[str, str]] = None) -> None:
        self.schemas = dict(SCHEMAS if schemas is None else schemas)
        self.calls: List[str] = []

    async def fetch(self, schema_id: str):
        self.calls.append(schema_id)
        text = self.schemas.get(schema_id)
        return DomUtil.parse(text) if text else None


class FakeInvoker:
    """Method invoker returning canned responses per ``urn#method``."""

    def __init__(self) -> None:
        self.responses: Dict[str, Any] = {}
        self.calls: List[Dict[str, Any]] = []

    async def invoke(self, urn, method_name, params, method=None, obj=None):
        self.calls.append(
            {"urn": urn, "method_name": method_name, "params": params, "method": method, "obj": obj}
        )
        response = self.responses.get(f"{urn}#{method_name}")
        if isinstance(response, Exception):
            raise response
        return response


class ManualTimer:
    """Timer that never fires by itself."""

    def __init__(self, interval, callback) -> None:
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True


class BrokenStorage:
    """Storage delegate failing on every call."""

    def get_item(self, key):
        raise IOError("storage offline")

    def set_item(self, key, value):
        raise IOError("storage offline")

    def remove_item(self, key):
        raise IOError("storage offline")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def invoker():
    return FakeInvoker()


@pytest.fixture
def unknown_method_fault():
    return CampaignException.soap_fault("SOP-330006", "Method 'GetModifiedEntities' of schema 'xtk:session' not found")
