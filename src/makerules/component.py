import dataclasses
import enum
import posixpath
import re
import types
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from makerules.exceptions import ConfigurationError, UnknownComponentError

COMPONENT_NAME_RE = re.compile(r"[A-Za-z0-9._+-]+", re.ASCII)

DEFAULT_PLATFORM_TOOLS: Mapping[str, str] = types.MappingProxyType(
    {
        "make": "make",
        "patch": "patch",
        "tar": "tar",
    }
)


class PatchPhase(enum.Enum):
    UNPACK = "unpack"
    INSTALL = "install"

    @classmethod
    def parse(cls, value: str, component_name: str) -> "PatchPhase":
        try:
            return cls(value)
        except ValueError:
            accepted = ", ".join(p.value for p in cls)
            raise ConfigurationError(
                f'A patch for the component "{component_name}" should be applied after "{value}",'
                f" but patches can only be applied after one of: {accepted}"
            ) from None


@dataclasses.dataclass(slots=True, frozen=True)
class Platform:
    name: str
    tools: Mapping[str, str] = dataclasses.field(
        default_factory=lambda: dict(DEFAULT_PLATFORM_TOOLS)
    )

    def __post_init__(self) -> None:
        merged = dict(DEFAULT_PLATFORM_TOOLS)
        merged.update(self.tools)
        object.__setattr__(self, "tools", types.MappingProxyType(merged))

    def __getitem__(self, tool: str) -> str:
        try:
            return self.tools[tool]
        except KeyError:
            raise ConfigurationError(
                f'The platform "{self.name}" does not define the tool "{tool}"'
            ) from None


@dataclasses.dataclass(slots=True, frozen=True)
class Patch:
    path: str
    after: str = PatchPhase.UNPACK.value
    destination: Optional[str] = None
    strip: int = 1
    fuzz: int = 0
    namespace: Optional[str] = None

    def cmd(self, platform: Platform) -> str:
        patch_file = posixpath.basename(self.path)
        if self.namespace:
            patch_file = f"{self.namespace}/{patch_file}"
        return (
            f"{platform['patch']} --strip={self.strip} --fuzz={self.fuzz}"
            f" --ignore-whitespace --no-backup-if-mismatch"
            f" < $(workdir)/patches/{patch_file}"
        )


def _as_tuple(value: Sequence[str]) -> Tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    return tuple(value)


@dataclasses.dataclass(slots=True, frozen=True)
class Component:
    """A piece of software with its own unpack/build/install life cycle

    Commands are kept exactly as given; they are shell snippets written for the build
    engine and may refer to engine variables such as `$(workdir)` or `$(MAKE)`.
    """

    name: str
    version: Optional[str] = None
    dirname: Optional[str] = None
    stagedir: Optional[str] = None
    build_dir: Optional[str] = None
    extract_with: Sequence[str] = ()
    configure: Sequence[str] = ()
    build: Sequence[str] = ()
    check: Sequence[str] = ()
    install: Sequence[str] = ()
    environment: Mapping[str, str] = dataclasses.field(default_factory=dict)
    patches: Sequence[Patch] = ()
    build_requires: Sequence[str] = ()
    cacheable: bool = False
    using_cache: bool = False
    cleanup_source: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("A component must have a non-empty name")
        # The name is used verbatim in target names
        if not COMPONENT_NAME_RE.fullmatch(self.name):
            raise ConfigurationError(
                f'The component name "{self.name}" is not valid. Names may only contain'
                " letters, digits and the characters ._+-"
            )
        if self.dirname is None:
            dirname = f"{self.name}-{self.version}" if self.version else self.name
            object.__setattr__(self, "dirname", dirname)
        if self.stagedir is None:
            object.__setattr__(self, "stagedir", f"$(workdir)/{self.name}-stage")
        if self.cleanup_source is None:
            object.__setattr__(self, "cleanup_source", f"rm -rf {self.dirname}")
        for field_name in (
            "extract_with",
            "configure",
            "build",
            "check",
            "install",
            "patches",
            "build_requires",
        ):
            object.__setattr__(
                self, field_name, _as_tuple(getattr(self, field_name))
            )
        object.__setattr__(
            self, "environment", types.MappingProxyType(dict(self.environment))
        )

    def get_build_dir(self) -> str:
        if self.build_dir:
            return posixpath.join(self.dirname, self.build_dir)
        return self.dirname

    @property
    def has_out_of_tree_build(self) -> bool:
        return bool(self.build_dir)

    def patches_after(self, phase: PatchPhase) -> List[Patch]:
        """Patches to apply after the given phase, in declaration order

        Raises ConfigurationError for patches with an unknown phase or for install-time
        patches without a destination.
        """
        selected = []
        for patch in self.patches:
            patch_phase = PatchPhase.parse(patch.after, self.name)
            if patch_phase is PatchPhase.INSTALL and not patch.destination:
                raise ConfigurationError(
                    f'The patch "{patch.path}" of the component "{self.name}" is applied after'
                    " install and therefore needs a destination directory to be applied in"
                )
            if patch_phase is phase:
                selected.append(patch)
        return selected


@dataclasses.dataclass(slots=True, frozen=True)
class Project:
    name: str
    components: Sequence[Component] = ()
    cleanup: bool = False
    settings: Mapping[str, Any] = dataclasses.field(default_factory=dict)

    def __post_init__(self) -> None:
        components = tuple(self.components)
        seen: Dict[str, Component] = {}
        for component in components:
            if component.name in seen:
                raise ConfigurationError(
                    f'The project "{self.name}" defines the component "{component.name}" more than once'
                )
            seen[component.name] = component
        object.__setattr__(self, "components", components)
        object.__setattr__(
            self, "settings", types.MappingProxyType(dict(self.settings))
        )

    @property
    def skipcheck(self) -> bool:
        return bool(self.settings.get("skipcheck", False))

    def component(self, name: str) -> Component:
        for component in self.components:
            if component.name == name:
                return component
        available = ", ".join(c.name for c in self.components) or "<none>"
        raise UnknownComponentError(
            f'The project "{self.name}" has no component named "{name}". Available components: {available}'
        )

    def cache_file(self, component: Component) -> str:
        if component.version:
            return f"{component.name}-{component.version}.tar.gz"
        return f"{component.name}.tar.gz"

    def list_component_dependencies(self, component: Component) -> List[str]:
        """Targets the component must wait for before configuring or installing

        Only build requirements naming another component of the project produce an
        edge; anything else is a system requirement outside of the rule set.
        """
        names = {c.name for c in self.components}
        return [f"{req}-install" for req in component.build_requires if req in names]
