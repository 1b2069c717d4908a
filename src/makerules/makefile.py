import dataclasses
from typing import List, Iterable


@dataclasses.dataclass(slots=True)
class Rule:
    """A single build target for the rule file

    :param target: The name of the target. Other rules refer to it by this name.
    :param dependencies: Targets that must be up to date before the recipe runs. Order only
      affects how the rule is displayed.
    :param recipe: Shell command lines run in order by the build engine. A line may contain
      embedded newlines when it uses line continuation.
    """

    target: str
    dependencies: List[str] = dataclasses.field(default_factory=list)
    recipe: List[str] = dataclasses.field(default_factory=list)

    def format(self) -> str:
        if self.dependencies:
            header = f"{self.target}: {' '.join(self.dependencies)}\n"
        else:
            header = f"{self.target}:\n"
        body = "".join(
            "\t" + line.replace("\n", "\n\t") + "\n" for line in self.recipe
        )
        return header + body

    def __str__(self) -> str:
        return self.format()


@dataclasses.dataclass(slots=True, frozen=True)
class CompletionMarker:
    """Zero-byte file recording that a phase has completed

    The build engine considers a target up to date when a file with the target's name
    exists and is newer than the files of its dependencies. Every phase that uses a marker
    writes it as the very last recipe line, so a failure earlier in the recipe leaves the
    marker absent (or stale) and the phase is retried on the next run.
    """

    target: str

    @property
    def command(self) -> str:
        return f"touch {self.target}"

    def removal_guard(self) -> str:
        return f"[ -e {self.target} ]"

    def removal_command(self) -> str:
        return f"rm {self.target}"

    def append_to(self, rule: Rule) -> None:
        rule.recipe.append(self.command)


def render_rules(rules: Iterable[Rule]) -> str:
    return "\n".join(r.format() for r in rules)
