import re
from typing import Dict, Optional, Union
from urllib.parse import quote

# list pages of standard objects; anything else falls back to "<type>/common"
_LIST_PATHS = {
    "projects": "projects/common",
    "tasks": "tasks/common",
    "resources": "resources/common",
    "ideas": "ideas/common",
    "risks": "risks/common",
    "issues": "issues/common",
    "timesheets": "timesheets/common",
}

_SINGULAR = {
    "tasks": "task",
    "resources": "resource",
    "ideas": "idea",
    "risks": "risk",
    "issues": "issue",
}

# left unescaped in filter query strings, matching what the Clarity UI emits
_URI_SAFE = "!*'()"

_CUSTOM_URL = re.compile(r"/pm/#/customobjects/([^/?]+)(?:/(\d+|common))?")
_STANDARD_URL = re.compile(r"/pm/#/([^/?]+)(?:/(\d+|common))?")


class DeepLinkBuilder:
    """
    URLs into the Clarity UI.

      all projects:          /pm/#/projects/common
      one project:           /pm/#/project/{id}/{tab}
      custom object list:    /pm/#/customobjects/{code}/common
      one custom record:     /pm/#/customobjects/{code}/{id}
    """

    def __init__(self, rest_base_url: str):
        base = re.sub(r"/ppm/rest/v1/?$", "", rest_base_url or "")
        self.base_url = base.rstrip("/")

    @staticmethod
    def is_custom_object(object_type: str) -> bool:
        return object_type.lower().startswith("cust")

    def list_link(self, object_type: str) -> str:
        if self.is_custom_object(object_type):
            return f"{self.base_url}/pm/#/customobjects/{object_type}/common"
        path = _LIST_PATHS.get(object_type.lower(), f"{object_type}/common")
        return f"{self.base_url}/pm/#/{path}"

    def record_link(self, object_type: str, record_id: Union[str, int], tab: str = "properties") -> str:
        if self.is_custom_object(object_type):
            return f"{self.base_url}/pm/#/customobjects/{object_type}/{record_id}"
        if object_type.lower() == "projects":
            return f"{self.base_url}/pm/#/project/{record_id}/{tab}"
        singular = _SINGULAR.get(object_type.lower(), object_type)
        return f"{self.base_url}/pm/#/{singular}/{record_id}/{tab}"

    def project_tasks_link(self, project_id: Union[str, int]) -> str:
        return f"{self.base_url}/pm/#/project/{project_id}/tasks"

    def filtered_link(self, object_type: str, field: str, value: str) -> str:
        return f"{self.list_link(object_type)}?filter={quote(f'{field}={value}', safe=_URI_SAFE)}"

    def multi_filter_link(self, object_type: str, filters: Dict[str, str]) -> str:
        parts = "&".join(f"{k}={v}" for k, v in filters.items())
        return f"{self.list_link(object_type)}?filter={quote(parts, safe=_URI_SAFE)}"

    def create_link(self, object_type: str) -> str:
        if self.is_custom_object(object_type):
            return f"{self.base_url}/pm/#/customobjects/{object_type}/new"
        return f"{self.base_url}/pm/#/{object_type}/new"

    @staticmethod
    def parse_url(url: str) -> Optional[Dict[str, Optional[str]]]:
        for pattern in (_CUSTOM_URL, _STANDARD_URL):
            m = pattern.search(url or "")
            if m:
                record_id = m.group(2)
                return {
                    "objectType": m.group(1),
                    "recordId": record_id if record_id and record_id != "common" else None,
                }
        return None

    @staticmethod
    def markdown(text: str, url: str) -> str:
        return f"[{text}]({url})"

    def drill_down_markdown(self, object_type: str, object_label: str, field: str,
                            field_display_name: str, value: str) -> str:
        url = self.filtered_link(object_type, field, value)
        return self.markdown(f'{object_label} where {field_display_name} = "{value}"', url)
