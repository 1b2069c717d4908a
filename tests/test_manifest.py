import textwrap

import pytest

from makerules.component import Patch
from makerules.exceptions import ConfigurationError, UnknownComponentError
from makerules.manifest import YAMLManifestParser
from makerules.manifest_parser.exceptions import (
    ManifestParseException,
    ManifestTypeException,
)


@pytest.fixture()
def manifest_parser() -> YAMLManifestParser:
    return YAMLManifestParser("test-makerules.yaml")


def _minimal(components: str) -> str:
    return (
        textwrap.dedent(
            """\
    project:
      name: demo
    components:
    """
        )
        + textwrap.indent(textwrap.dedent(components), "  ")
    )


def test_parsing_demo_manifest(manifest_parser, demo_manifest_content):
    manifest = manifest_parser.parse_manifest(fd=demo_manifest_content)
    project = manifest.project

    assert project.name == "demo"
    assert project.cleanup
    assert not project.skipcheck
    assert manifest.platform.name == "el-9-x86_64"
    assert manifest.platform["make"] == "gmake"
    assert manifest.platform["tar"] == "tar"
    assert [c.name for c in project.components] == ["zlib", "openssl"]

    zlib = project.component("zlib")
    assert zlib.version == "1.3.1"
    assert zlib.dirname == "zlib-1.3.1"
    assert zlib.install == ("$(MAKE) install",)
    assert project.cache_file(zlib) == "zlib-1.3.1.tar.gz"

    openssl = project.component("openssl")
    assert openssl.version is None
    assert openssl.dirname == "openssl"
    assert openssl.get_build_dir() == "openssl/build"
    assert dict(openssl.environment) == {"CFLAGS": "-O2"}
    assert openssl.extract_with == ("gunzip -c openssl.tar.gz | tar xf -",)
    assert openssl.configure == ("../config",)
    assert openssl.patches == (
        Patch("patches/openssl/fix.patch", namespace="openssl"),
    )
    assert openssl.build_requires == ("zlib", "perl")
    assert openssl.cacheable
    assert not openssl.using_cache
    assert project.list_component_dependencies(openssl) == ["zlib-install"]
    assert project.cache_file(openssl) == "openssl.tar.gz"


def test_parsing_from_file(tmp_path, demo_manifest_content):
    manifest_file = tmp_path / "makerules.yaml"
    manifest_file.write_text(demo_manifest_content)

    manifest = YAMLManifestParser(str(manifest_file)).parse_manifest()

    assert manifest.manifest_path == str(manifest_file)
    assert [c.name for c in manifest.project.components] == ["zlib", "openssl"]


def test_parsing_defaults(manifest_parser):
    content = textwrap.dedent(
        """\
    project:
      name: demo
    """
    )

    manifest = manifest_parser.parse_manifest(fd=content)

    assert manifest.project.components == ()
    assert not manifest.project.cleanup
    assert manifest.platform.name == "default"
    assert dict(manifest.platform.tools) == {
        "make": "make",
        "patch": "patch",
        "tar": "tar",
    }


def test_parsing_patches(manifest_parser):
    content = _minimal(
        """\
    - name: foo
      version: "2.1"
      patches:
        - fix-build.patch
        - path: patches/foo/fix-install.patch
          after: install
          destination: /opt/demo
          strip: 0
          fuzz: 2
          namespace: common
    """
    )

    manifest = manifest_parser.parse_manifest(fd=content)
    foo = manifest.project.component("foo")

    assert foo.dirname == "foo-2.1"
    assert foo.patches == (
        Patch("fix-build.patch", namespace="foo"),
        Patch(
            "patches/foo/fix-install.patch",
            after="install",
            destination="/opt/demo",
            strip=0,
            fuzz=2,
            namespace="common",
        ),
    )


def test_parsing_integer_version(manifest_parser):
    content = _minimal(
        """\
    - name: foo
      version: 3
      environment:
        JOBS: 4
    """
    )

    foo = manifest_parser.parse_manifest(fd=content).project.component("foo")

    assert foo.version == "3"
    assert dict(foo.environment) == {"JOBS": "4"}


@pytest.mark.parametrize(
    "components,expected_msg",
    [
        (
            """\
    - name: foo
      versoin: "1.0"
    """,
            "Unknown key components[0].versoin",
        ),
        (
            """\
    - version: "1.0"
    """,
            "Missing required key name at components[0]",
        ),
        (
            """\
    - name: foo
      patches:
        - path: fix.patch
          after: configure
    """,
            "(at components[0].patches[0].after)",
        ),
        (
            """\
    - name: foo
      patches:
        - path: fix.patch
          after: install
    """,
            "The patch at components[0].patches[0] is applied after install and must have a destination",
        ),
        (
            """\
    - name: foo
      version: 1.0
    """,
            "The version at components[0].version was read as the number 1.0",
        ),
        (
            """\
    - name: foo
      version: "1.0 beta"
    """,
            'The version "1.0 beta" at components[0].version is not a valid version',
        ),
        (
            """\
    - name: foo
      environment:
        1FOO: bar
    """,
            'The environment variable name "1FOO" at components[0].environment is not a valid shell variable name',
        ),
        (
            """\
    - name: foo bar
    """,
            'The component name "foo bar" at components[0].name is not valid',
        ),
        (
            """\
    - name: foo
    - name: foo
    """,
            'The project "demo" defines the component "foo" more than once',
        ),
    ],
)
def test_parsing_errors(manifest_parser, components, expected_msg):
    content = _minimal(components)

    with pytest.raises(ManifestParseException) as e_info:
        manifest_parser.parse_manifest(fd=content)

    assert expected_msg in e_info.value.message


@pytest.mark.parametrize(
    "components,expected_msg",
    [
        (
            """\
    - name: foo
      cacheable: "yes"
    """,
            'The key components[0].cacheable must be a bool in manifest "test-makerules.yaml"',
        ),
        (
            """\
    - name: foo
      patches:
        - path: fix.patch
          strip: true
    """,
            'The key components[0].patches[0].strip must be a int in manifest "test-makerules.yaml"',
        ),
        (
            """\
    - name: foo
      build: [make, [make, check]]
    """,
            'The key components[0].build[1] must be a str in manifest "test-makerules.yaml"',
        ),
    ],
)
def test_parsing_type_errors(manifest_parser, components, expected_msg):
    content = _minimal(components)

    with pytest.raises(ManifestTypeException) as e_info:
        manifest_parser.parse_manifest(fd=content)

    assert e_info.value.message == expected_msg


def test_parsing_missing_project(manifest_parser):
    with pytest.raises(ManifestParseException) as e_info:
        manifest_parser.parse_manifest(fd="components: []\n")

    assert e_info.value.message == (
        'Missing required key project at document root in manifest "test-makerules.yaml"'
    )


def test_parsing_invalid_yaml(manifest_parser):
    with pytest.raises(ManifestParseException) as e_info:
        manifest_parser.parse_manifest(fd="project: [name: demo\n")

    assert "yamllint -d relaxed test-makerules.yaml" in e_info.value.message


def test_parsing_not_a_mapping(manifest_parser):
    with pytest.raises(ManifestParseException):
        manifest_parser.parse_manifest(fd="- project\n")


def test_with_cached_components(manifest_parser, demo_manifest_content):
    manifest = manifest_parser.parse_manifest(fd=demo_manifest_content)

    cached = manifest.with_cached_components({"openssl"})

    assert cached.project.component("openssl").using_cache
    assert not cached.project.component("zlib").using_cache
    assert not manifest.project.component("openssl").using_cache
    assert manifest.with_cached_components(set()) is manifest


def test_with_cached_components_errors(manifest_parser, demo_manifest_content):
    manifest = manifest_parser.parse_manifest(fd=demo_manifest_content)

    with pytest.raises(ConfigurationError):
        manifest.with_cached_components({"zlib"})
    with pytest.raises(UnknownComponentError):
        manifest.with_cached_components({"libfoo"})
