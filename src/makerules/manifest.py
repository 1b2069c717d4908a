import dataclasses
import re
from typing import (
    Any,
    Collection,
    Dict,
    IO,
    List,
    Mapping,
    NoReturn,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from debian.debian_support import Version
from Levenshtein import distance

from makerules.component import (
    COMPONENT_NAME_RE,
    Component,
    Patch,
    PatchPhase,
    Platform,
    Project,
)
from makerules.exceptions import ConfigurationError
from makerules.manifest_parser.exceptions import (
    ManifestParseException,
    ManifestTypeException,
)
from makerules.manifest_parser.util import AttributePath
from makerules.util import _warn, escape_shell
from makerules.yaml import MANIFEST_YAML, YAMLError

_ENV_VAR_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*", re.ASCII)

MK_PROJECT = "project"
MK_PLATFORM = "platform"
MK_COMPONENTS = "components"

_ROOT_KEYS = frozenset([MK_PROJECT, MK_PLATFORM, MK_COMPONENTS])
_PROJECT_KEYS = frozenset(["name", "cleanup", "settings"])
_PLATFORM_KEYS = frozenset(["name", "tools"])
_COMPONENT_KEYS = frozenset(
    [
        "name",
        "version",
        "dirname",
        "stagedir",
        "build-dir",
        "extract-with",
        "configure",
        "build",
        "check",
        "install",
        "environment",
        "patches",
        "build-requires",
        "cacheable",
        "using-cache",
        "cleanup-source",
    ]
)
_PATCH_KEYS = frozenset(["path", "after", "destination", "strip", "fuzz", "namespace"])

DEFAULT_PLATFORM_NAME = "default"


def _detect_possible_typo(
    d: Mapping[str, Any],
    key: str,
    attribute_parent_path: AttributePath,
) -> None:
    k_len = len(key)
    for actual_key in d:
        if not isinstance(actual_key, str) or actual_key == key:
            continue
        if abs(k_len - len(actual_key)) > 2:
            continue
        if distance(key, actual_key) > 2:
            continue
        path = attribute_parent_path.path if attribute_parent_path else ""
        ref = f'at "{path}"' if path else "at the manifest root level"
        _warn(
            f'Possible typo: The key "{actual_key}" should probably have been "{key}" {ref}'
        )


@dataclasses.dataclass(slots=True, frozen=True)
class ProjectManifest:
    manifest_path: str
    project: Project
    platform: Platform

    def with_cached_components(self, names: Collection[str]) -> "ProjectManifest":
        """Mark the named components as being installed from the cache"""
        if not names:
            return self
        for name in names:
            component = self.project.component(name)
            if not component.cacheable:
                raise ConfigurationError(
                    f'Cannot use the cache for "{name}": the component is not cacheable'
                    f' in "{self.manifest_path}"'
                )
        components = [
            dataclasses.replace(c, using_cache=True) if c.name in names else c
            for c in self.project.components
        ]
        project = dataclasses.replace(self.project, components=components)
        return dataclasses.replace(self, project=project)


class YAMLManifestParser:
    __slots__ = ("manifest_path",)

    def __init__(self, manifest_path: str) -> None:
        self.manifest_path = manifest_path

    def _error(self, msg: str) -> NoReturn:
        raise ManifestParseException(msg)

    def _check_keys(
        self,
        d: Mapping[str, Any],
        known_keys: Collection[str],
        attribute_path: AttributePath,
    ) -> None:
        for key in d:
            if key in known_keys:
                continue
            for known_key in sorted(known_keys):
                if known_key not in d:
                    _detect_possible_typo(d, known_key, attribute_path)
            key_path = attribute_path[str(key)].path
            self._error(
                f'Unknown key {key_path} in manifest "{self.manifest_path}".'
                f" Supported keys here are: {', '.join(sorted(known_keys))}"
            )

    def _optional_key(
        self,
        d: Mapping[str, Any],
        key: str,
        attribute_parent_path: AttributePath,
        expected_type=None,
        default_value=None,
    ):
        v = d.get(key)
        if v is None:
            return default_value
        if expected_type is not None:
            return self._ensure_value_is_type(
                v, expected_type, key, attribute_parent_path
            )
        return v

    def _required_key(
        self,
        d: Mapping[str, Any],
        key: str,
        attribute_parent_path: AttributePath,
        expected_type=None,
    ):
        v = d.get(key)
        if v is None:
            _detect_possible_typo(d, key, attribute_parent_path)
            self._error(
                f'Missing required key {key} at {attribute_parent_path.path} in manifest "{self.manifest_path}"'
            )
        if expected_type is not None:
            return self._ensure_value_is_type(
                v, expected_type, key, attribute_parent_path
            )
        return v

    def _ensure_value_is_type(
        self,
        v,
        t,
        key: Union[str, int, AttributePath],
        attribute_parent_path: Optional[AttributePath],
    ):
        if v is None:
            return None
        # bool is a subclass of int, but "strip: true" is never meant as a number
        if not isinstance(v, t) or (isinstance(v, bool) and bool not in _as_types(t)):
            if isinstance(t, tuple):
                t_msg = "one of: " + ", ".join(x.__name__ for x in t)
            else:
                t_msg = f"a {t.__name__}"
            key_path = (
                key.path if isinstance(key, AttributePath) else attribute_parent_path[key].path
            )
            raise ManifestTypeException(
                f'The key {key_path} must be {t_msg} in manifest "{self.manifest_path}"'
            )
        return v

    def _command_list(
        self,
        d: Mapping[str, Any],
        key: str,
        attribute_parent_path: AttributePath,
    ) -> Tuple[str, ...]:
        v = self._optional_key(d, key, attribute_parent_path, (str, list), [])
        if isinstance(v, str):
            return (v,) if v.strip() else ()
        commands: List[str] = []
        list_path = attribute_parent_path[key]
        for idx, command in enumerate(v):
            self._ensure_value_is_type(command, str, idx, list_path)
            if command.strip():
                commands.append(command)
        return tuple(commands)

    def _environment(
        self,
        d: Mapping[str, Any],
        attribute_parent_path: AttributePath,
    ) -> Dict[str, str]:
        raw = self._optional_key(d, "environment", attribute_parent_path, dict, {})
        env_path = attribute_parent_path["environment"]
        environment: Dict[str, str] = {}
        for name, value in raw.items():
            if not isinstance(name, str) or not _ENV_VAR_NAME.fullmatch(name):
                self._error(
                    f'The environment variable name "{name}" at {env_path.path} is not a valid'
                    f' shell variable name in manifest "{self.manifest_path}"'
                )
            self._ensure_value_is_type(value, (str, int), name, env_path)
            environment[name] = str(value)
        return environment

    def _version(
        self,
        d: Mapping[str, Any],
        attribute_parent_path: AttributePath,
    ) -> Optional[str]:
        raw = d.get("version")
        if raw is None:
            return None
        version_path = attribute_parent_path["version"]
        if isinstance(raw, float):
            self._error(
                f"The version at {version_path.path} was read as the number {raw}. Please quote"
                f' it to keep it as written in manifest "{self.manifest_path}"'
            )
        self._ensure_value_is_type(raw, (str, int), version_path, None)
        version = str(raw)
        try:
            Version(version)
        except ValueError:
            self._error(
                f'The version "{version}" at {version_path.path} is not a valid version'
                f' in manifest "{self.manifest_path}"'
            )
        return version

    def _parse_patch(
        self,
        raw: Any,
        component_name: str,
        attribute_path: AttributePath,
    ) -> Patch:
        if isinstance(raw, str):
            return Patch(raw, namespace=component_name)
        self._ensure_value_is_type(raw, dict, attribute_path, None)
        self._check_keys(raw, _PATCH_KEYS, attribute_path)
        path = self._required_key(raw, "path", attribute_path, str)
        after = self._optional_key(
            raw, "after", attribute_path, str, PatchPhase.UNPACK.value
        )
        try:
            phase = PatchPhase.parse(after, component_name)
        except ConfigurationError as e:
            self._error(f"{e.message} (at {attribute_path['after'].path})")
        destination = self._optional_key(raw, "destination", attribute_path, str)
        if phase is PatchPhase.INSTALL and not destination:
            self._error(
                f"The patch at {attribute_path.path} is applied after install and must have a"
                f' destination in manifest "{self.manifest_path}"'
            )
        return Patch(
            path,
            after=after,
            destination=destination,
            strip=self._optional_key(raw, "strip", attribute_path, int, 1),
            fuzz=self._optional_key(raw, "fuzz", attribute_path, int, 0),
            namespace=self._optional_key(
                raw, "namespace", attribute_path, str, component_name
            ),
        )

    def _parse_component(self, raw: Any, attribute_path: AttributePath) -> Component:
        self._ensure_value_is_type(raw, dict, attribute_path, None)
        self._check_keys(raw, _COMPONENT_KEYS, attribute_path)
        name = self._required_key(raw, "name", attribute_path, str)
        if not COMPONENT_NAME_RE.fullmatch(name):
            self._error(
                f'The component name "{name}" at {attribute_path["name"].path} is not valid'
                f' in manifest "{self.manifest_path}". Names may only contain letters, digits'
                " and the characters ._+-"
            )
        patches_raw = self._optional_key(raw, "patches", attribute_path, list, [])
        patches_path = attribute_path["patches"]
        patches = [
            self._parse_patch(p, name, patches_path[idx])
            for idx, p in enumerate(patches_raw)
        ]
        return Component(
            name,
            version=self._version(raw, attribute_path),
            dirname=self._optional_key(raw, "dirname", attribute_path, str),
            stagedir=self._optional_key(raw, "stagedir", attribute_path, str),
            build_dir=self._optional_key(raw, "build-dir", attribute_path, str),
            extract_with=self._command_list(raw, "extract-with", attribute_path),
            configure=self._command_list(raw, "configure", attribute_path),
            build=self._command_list(raw, "build", attribute_path),
            check=self._command_list(raw, "check", attribute_path),
            install=self._command_list(raw, "install", attribute_path),
            environment=self._environment(raw, attribute_path),
            patches=patches,
            build_requires=self._command_list(raw, "build-requires", attribute_path),
            cacheable=self._optional_key(raw, "cacheable", attribute_path, bool, False),
            using_cache=self._optional_key(
                raw, "using-cache", attribute_path, bool, False
            ),
            cleanup_source=self._optional_key(
                raw, "cleanup-source", attribute_path, str
            ),
        )

    def _parse_platform(self, raw: Any, attribute_path: AttributePath) -> Platform:
        if raw is None:
            return Platform(DEFAULT_PLATFORM_NAME)
        self._ensure_value_is_type(raw, dict, attribute_path, None)
        self._check_keys(raw, _PLATFORM_KEYS, attribute_path)
        name = self._optional_key(
            raw, "name", attribute_path, str, DEFAULT_PLATFORM_NAME
        )
        tools_raw = self._optional_key(raw, "tools", attribute_path, dict, {})
        tools_path = attribute_path["tools"]
        tools: Dict[str, str] = {}
        for tool, command in tools_raw.items():
            self._ensure_value_is_type(command, str, str(tool), tools_path)
            tools[str(tool)] = command
        return Platform(name, tools)

    def from_yaml_dict(self, yaml_data: object) -> ProjectManifest:
        attribute_path = AttributePath.root_path()
        if not isinstance(yaml_data, dict):
            self._error(
                f'The manifest "{self.manifest_path}" should be a YAML file with a single mapping at the root'
            )
        self._check_keys(yaml_data, _ROOT_KEYS, attribute_path)

        project_path = attribute_path[MK_PROJECT]
        project_raw = self._required_key(yaml_data, MK_PROJECT, attribute_path, dict)
        self._check_keys(project_raw, _PROJECT_KEYS, project_path)
        settings = self._optional_key(project_raw, "settings", project_path, dict, {})
        self._optional_key(settings, "skipcheck", project_path["settings"], bool)

        components_path = attribute_path[MK_COMPONENTS]
        components_raw: Sequence[Any] = self._optional_key(
            yaml_data, MK_COMPONENTS, attribute_path, list, []
        )
        components = [
            self._parse_component(c, components_path[idx])
            for idx, c in enumerate(components_raw)
        ]
        try:
            project = Project(
                self._required_key(project_raw, "name", project_path, str),
                components=components,
                cleanup=self._optional_key(
                    project_raw, "cleanup", project_path, bool, False
                ),
                settings=dict(settings),
            )
        except ConfigurationError as e:
            self._error(f'{e.message} (in manifest "{self.manifest_path}")')

        platform = self._parse_platform(
            yaml_data.get(MK_PLATFORM), attribute_path[MK_PLATFORM]
        )
        return ProjectManifest(self.manifest_path, project, platform)

    def _parse_manifest(self, fd: Union[IO[bytes], str]) -> ProjectManifest:
        try:
            data = MANIFEST_YAML.load(fd)
        except YAMLError as e:
            msg = str(e).rstrip()
            msg += (
                f"\n\nYou can use `yamllint -d relaxed {escape_shell(self.manifest_path)}` to validate"
                " the YAML syntax."
            )
            raise ManifestParseException(
                f"Could not parse {self.manifest_path} as a YAML document: {msg}"
            ) from e
        return self.from_yaml_dict(data)

    def parse_manifest(
        self,
        *,
        fd: Optional[Union[IO[bytes], str]] = None,
    ) -> ProjectManifest:
        if fd is None:
            with open(self.manifest_path, "rb") as fd:
                return self._parse_manifest(fd)
        else:
            return self._parse_manifest(fd)


def _as_types(t) -> Tuple[type, ...]:
    return t if isinstance(t, tuple) else (t,)
