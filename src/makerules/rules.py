"""Rule synthesis for a single component

Every life cycle phase of a component becomes one rule named `<component>-<phase>`. The
phases are chained through their completion markers, so the build engine runs them in order
within a component while remaining free to interleave independent components.
"""

import dataclasses
import enum
from typing import (
    Callable,
    Dict,
    List,
    Optional,
)

from makerules.cache_policy import CacheMode
from makerules.component import Component, PatchPhase, Platform, Project
from makerules.makefile import CompletionMarker, Rule, render_rules
from makerules.shell import andand, andand_multiline, command_chain, guarded
from makerules.util import _debug_log

FILE_LIST_TARGET = "file-list-before-build"
CACHE_OUTPUT_DIR = "output/cache"


class Phase(enum.Enum):
    UNPACK = "unpack"
    PATCH = "patch"
    CONFIGURE = "configure"
    BUILD = "build"
    CHECK = "check"
    CACHE = "cache"
    INSTALL = "install"
    CLEANUP = "cleanup"
    CLEAN = "clean"
    CLOBBER = "clobber"


SOURCE_PHASES = (
    Phase.UNPACK,
    Phase.PATCH,
    Phase.CONFIGURE,
    Phase.BUILD,
    Phase.CHECK,
)


@dataclasses.dataclass(slots=True, frozen=True)
class RuleContext:
    component: Component
    project: Project
    platform: Platform
    cache_mode: CacheMode

    def phase_target(self, phase: Phase) -> str:
        return f"{self.component.name}-{phase.value}"

    @property
    def cache_file(self) -> str:
        return self.project.cache_file(self.component)


PhaseBuilder = Callable[[RuleContext, Rule], None]


@dataclasses.dataclass(slots=True, frozen=True)
class _PhaseRuleDefinition:
    builder: PhaseBuilder
    writes_marker: bool

    def create_rule(self, context: RuleContext, target: str) -> Rule:
        rule = Rule(target)
        self.builder(context, rule)
        if self.writes_marker:
            CompletionMarker(rule.target).append_to(rule)
        return rule


_PHASE_RULES: Dict[Phase, _PhaseRuleDefinition] = {}


def _phase_rule(
    phase: Phase,
    *,
    writes_marker: bool = True,
) -> Callable[[PhaseBuilder], PhaseBuilder]:
    """Register the builder of a phase rule

    The builder fills in the dependencies and recipe of a rule that has already been given
    its target. When `writes_marker` is set, the completion marker is appended after the
    builder ran, so it is always the last recipe line.
    """

    def _register(builder: PhaseBuilder) -> PhaseBuilder:
        if phase in _PHASE_RULES:
            raise AssertionError(f"Multiple rule builders for phase {phase.value}")
        _PHASE_RULES[phase] = _PhaseRuleDefinition(builder, writes_marker)
        return builder

    return _register


@_phase_rule(Phase.UNPACK)
def _unpack_rule(context: RuleContext, rule: Rule) -> None:
    component = context.component
    rule.dependencies = [FILE_LIST_TARGET]
    extraction = command_chain(component.environment, component.extract_with)
    if extraction:
        rule.recipe.append(extraction)
    if context.cache_mode.produces_cache:
        rule.recipe.append(f'mkdir -p "{component.stagedir}"')


@_phase_rule(Phase.PATCH)
def _patch_rule(context: RuleContext, rule: Rule) -> None:
    component = context.component
    rule.dependencies = [context.phase_target(Phase.UNPACK)]
    patches = component.patches_after(PatchPhase.UNPACK)
    if patches:
        rule.recipe.append(
            andand_multiline(
                f"cd {component.dirname}",
                [p.cmd(context.platform) for p in patches],
            )
        )


@_phase_rule(Phase.CONFIGURE)
def _configure_rule(context: RuleContext, rule: Rule) -> None:
    component = context.component
    build_dir = component.get_build_dir()
    rule.dependencies = [context.phase_target(Phase.PATCH)]
    rule.dependencies.extend(context.project.list_component_dependencies(component))
    if component.has_out_of_tree_build:
        rule.recipe.append(f"[ -d {build_dir} ] || mkdir -p {build_dir}")
    if component.configure:
        rule.recipe.append(
            command_chain(
                component.environment,
                f"cd {build_dir}",
                component.configure,
            )
        )


@_phase_rule(Phase.BUILD)
def _build_rule(context: RuleContext, rule: Rule) -> None:
    component = context.component
    rule.dependencies = [context.phase_target(Phase.CONFIGURE)]
    if component.build:
        rule.recipe.append(
            command_chain(
                component.environment,
                f"cd {component.get_build_dir()}",
                component.build,
            )
        )


@_phase_rule(Phase.CHECK)
def _check_rule(context: RuleContext, rule: Rule) -> None:
    component = context.component
    rule.dependencies = [context.phase_target(Phase.BUILD)]
    if context.project.skipcheck:
        _debug_log(f"Skipping the tests of {component.name}: skipcheck is set")
        return
    if component.check:
        rule.recipe.append(
            command_chain(
                component.environment,
                f"cd {component.get_build_dir()}",
                component.check,
            )
        )


@_phase_rule(Phase.CACHE, writes_marker=False)
def _cache_rule(context: RuleContext, rule: Rule) -> None:
    component = context.component
    rule.dependencies = [context.phase_target(Phase.CHECK)]
    rule.recipe.append(
        command_chain(
            component.environment,
            f"cd {component.get_build_dir()}",
            component.install,
            f"cd {component.stagedir}",
            f'{context.platform["tar"]} czpf "$(workdir)/{rule.target}" *',
        )
    )


@_phase_rule(Phase.INSTALL)
def _install_rule(context: RuleContext, rule: Rule) -> None:
    component = context.component
    tar = context.platform["tar"]
    if context.cache_mode.uses_cache_artifact:
        cache_file = context.cache_file
        # Other components must be installed before the cached tree is extracted.
        rule.dependencies = [cache_file]
        rule.dependencies.extend(
            context.project.list_component_dependencies(component)
        )
        rule.recipe.append(f"{tar} xzpf {cache_file} -C /")
        if not context.cache_mode.consumes_cache:
            rule.recipe.append(f"mkdir -p {CACHE_OUTPUT_DIR}")
            rule.recipe.append(f"mv {cache_file} {CACHE_OUTPUT_DIR}")
    else:
        rule.dependencies = [context.phase_target(Phase.CHECK)]
        if component.install:
            rule.recipe.append(
                command_chain(
                    component.environment,
                    f"cd {component.get_build_dir()}",
                    component.install,
                )
            )

    for patch in component.patches_after(PatchPhase.INSTALL):
        rule.recipe.append(
            andand(
                f"cd {patch.destination}",
                patch.cmd(context.platform),
            )
        )


@_phase_rule(Phase.CLEANUP, writes_marker=False)
def _cleanup_rule(context: RuleContext, rule: Rule) -> None:
    rule.dependencies = [context.phase_target(Phase.INSTALL)]
    if context.cache_mode.builds_from_source:
        rule.recipe.append(context.component.cleanup_source)
        CompletionMarker(rule.target).append_to(rule)


@_phase_rule(Phase.CLEAN, writes_marker=False)
def _clean_rule(context: RuleContext, rule: Rule) -> None:
    component = context.component
    if not context.cache_mode.builds_from_source:
        return
    build_dir = component.get_build_dir()
    rule.recipe.append(
        guarded(
            f"[ -d {build_dir} ]",
            f"cd {build_dir}",
            f"{context.platform['make']} clean",
        )
    )
    for phase in (Phase.CONFIGURE, Phase.BUILD, Phase.INSTALL):
        marker = CompletionMarker(context.phase_target(phase))
        rule.recipe.append(guarded(marker.removal_guard(), marker.removal_command()))
    if context.cache_mode.produces_cache:
        # TODO: The install phase has usually moved the archive into output/cache by
        #  now; decide whether clean should remove that copy instead.
        rule.recipe.append(f"rm {context.cache_file}")


@_phase_rule(Phase.CLOBBER, writes_marker=False)
def _clobber_rule(context: RuleContext, rule: Rule) -> None:
    component = context.component
    if not context.cache_mode.builds_from_source:
        return
    rule.dependencies = [context.phase_target(Phase.CLEAN)]
    unpack_marker = CompletionMarker(context.phase_target(Phase.UNPACK))
    rule.recipe.append(
        guarded(f"[ -d {component.dirname} ]", f"rm -r {component.dirname}")
    )
    rule.recipe.append(
        guarded(unpack_marker.removal_guard(), unpack_marker.removal_command())
    )


class ComponentRules:
    """Creates all rules for a component

    :param component: The component to create rules for.
    :param project: The project the component belongs to.
    :param platform: The platform the component is built on.
    """

    __slots__ = ("component", "project", "platform")

    def __init__(
        self,
        component: Component,
        project: Project,
        platform: Platform,
    ) -> None:
        self.component = component
        self.project = project
        self.platform = platform

    @property
    def cache_mode(self) -> CacheMode:
        return CacheMode.of(self.component)

    def _context(self) -> RuleContext:
        return RuleContext(
            self.component,
            self.project,
            self.platform,
            self.cache_mode,
        )

    def phases(self, cache_mode: Optional[CacheMode] = None) -> List[Phase]:
        """The phases that get a rule, in declaration order

        Phases that do not apply are left out entirely rather than emitted as empty
        rules, which is how a component installed from the cache skips its source phases.
        """
        if cache_mode is None:
            cache_mode = self.cache_mode
        name = self.component.name
        phases: List[Phase] = []
        if cache_mode.builds_from_source:
            phases.extend(SOURCE_PHASES)
            if cache_mode.produces_cache:
                phases.append(Phase.CACHE)
        else:
            _debug_log(f"Installing {name} from the cache; omitting its source phases")
        phases.append(Phase.INSTALL)
        if self.project.cleanup:
            if cache_mode.builds_from_source:
                phases.append(Phase.CLEANUP)
            else:
                _debug_log(f"Omitting the cleanup of {name}: it is installed from the cache")
        phases.extend((Phase.CLEAN, Phase.CLOBBER))
        return phases

    def component_rule(self) -> Rule:
        name = self.component.name
        return Rule(name, dependencies=[f"{name}-install"])

    def phase_rule(self, phase: Phase) -> Rule:
        """Create the rule of a single phase

        Raises ValueError for a phase the component does not get a rule for, such as
        the cache phase of a component that is not cacheable.
        """
        context = self._context()
        if phase not in self.phases(context.cache_mode):
            raise ValueError(
                f"The component {self.component.name} has no {phase.value} rule"
                f" ({context.cache_mode.value})"
            )
        return self._create_phase_rule(context, phase)

    @staticmethod
    def _create_phase_rule(context: RuleContext, phase: Phase) -> Rule:
        if phase is Phase.CACHE:
            target = context.cache_file
        else:
            target = context.phase_target(phase)
        return _PHASE_RULES[phase].create_rule(context, target)

    def rules(self) -> List[Rule]:
        context = self._context()
        rules = [self.component_rule()]
        rules.extend(
            self._create_phase_rule(context, phase)
            for phase in self.phases(context.cache_mode)
        )
        _debug_log(
            f"Generated {len(rules)} rules for {self.component.name} ({context.cache_mode.value})"
        )
        return rules

    def format(self) -> str:
        """Render all rules of the component as a rule file fragment"""
        return render_rules(self.rules())

    __str__ = format


def project_rules(
    project: Project,
    platform: Platform,
    *,
    component_names: Optional[List[str]] = None,
) -> List[ComponentRules]:
    if component_names:
        # A component selected more than once is rendered once
        components = [project.component(n) for n in dict.fromkeys(component_names)]
    else:
        components = list(project.components)
    return [ComponentRules(c, project, platform) for c in components]


def format_project(
    project: Project,
    platform: Platform,
    *,
    component_names: Optional[List[str]] = None,
) -> str:
    return "\n".join(
        cr.format()
        for cr in project_rules(project, platform, component_names=component_names)
    )
