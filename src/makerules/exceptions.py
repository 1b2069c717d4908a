from typing import cast


class MakeRulesRuntimeError(RuntimeError):
    @property
    def message(self) -> str:
        return cast("str", self.args[0])


class ConfigurationError(MakeRulesRuntimeError):
    pass


class UnknownComponentError(MakeRulesRuntimeError):
    pass
