import enum
from typing import TYPE_CHECKING

from makerules.exceptions import ConfigurationError

if TYPE_CHECKING:
    from makerules.component import Component


class CacheMode(enum.Enum):
    """How a component's build output relates to the cache

    * FROM_SOURCE: build from source, nothing is archived.
    * FROM_SOURCE_CACHEABLE: build from source and archive the staged install tree.
    * FROM_CACHE: skip the source phases and install a previously archived tree.
    """

    FROM_SOURCE = "from-source"
    FROM_SOURCE_CACHEABLE = "from-source-cacheable"
    FROM_CACHE = "from-cache"

    @classmethod
    def of(cls, component: "Component") -> "CacheMode":
        if component.using_cache:
            if not component.cacheable:
                raise ConfigurationError(
                    f'The component "{component.name}" is marked as using the cache, but it is'
                    " not cacheable. Only cacheable components can be installed from the cache."
                )
            return cls.FROM_CACHE
        if component.cacheable:
            return cls.FROM_SOURCE_CACHEABLE
        return cls.FROM_SOURCE

    @property
    def builds_from_source(self) -> bool:
        return self is not CacheMode.FROM_CACHE

    @property
    def produces_cache(self) -> bool:
        return self is CacheMode.FROM_SOURCE_CACHEABLE

    @property
    def consumes_cache(self) -> bool:
        return self is CacheMode.FROM_CACHE

    @property
    def uses_cache_artifact(self) -> bool:
        """Whether the install phase goes through the cache archive"""
        return self is not CacheMode.FROM_SOURCE
