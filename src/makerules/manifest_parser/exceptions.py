from makerules.exceptions import MakeRulesRuntimeError


class ManifestException(MakeRulesRuntimeError):
    pass


class ManifestParseException(ManifestException):
    pass


class ManifestTypeException(ManifestParseException):
    pass
