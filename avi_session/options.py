"""Query options for resolving controller objects by name."""

import dataclasses
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from .exceptions import InvalidOptionsError


@dataclass
class ApiOptions:
    """Filters applied when looking up a single object through the query API."""

    name: str = ""
    cloud: str = ""
    cloud_uuid: str = ""
    skip_default: bool = False
    include_name: bool = False

    def build_uri(self, obj: str) -> str:
        """
        Build the collection query URI for an object type.

        Args:
            obj: Object type, e.g. "pool" or "virtualservice"

        Returns:
            URI relative to the controller base, e.g. "api/pool?name=web"

        Raises:
            InvalidOptionsError: If no name is set
        """
        if not self.name:
            raise InvalidOptionsError("Name not specified")

        uri = "api/" + obj + "?name=" + quote(self.name, safe="")
        # cloud name takes precedence over cloud uuid
        if self.cloud:
            uri += "&cloud=" + quote(self.cloud, safe="")
        elif self.cloud_uuid:
            uri += "&cloud_ref.uuid=" + quote(self.cloud_uuid, safe="")
        if self.skip_default:
            uri += "&skip_default=true"
        if self.include_name:
            uri += "&include_name=true"
        return uri


def make_options(options: Optional[ApiOptions] = None, **kwargs) -> ApiOptions:
    """Return `options` updated with keyword overrides, or new options from them."""
    if options is None:
        return ApiOptions(**kwargs)
    if not kwargs:
        return options
    return dataclasses.replace(options, **kwargs)
