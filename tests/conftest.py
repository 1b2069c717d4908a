import textwrap

import pytest

from makerules.component import Component, Platform, Project


@pytest.fixture()
def platform() -> Platform:
    return Platform("el-9-x86_64")


@pytest.fixture()
def zlib_component() -> Component:
    return Component(
        "zlib",
        version="1.3.1",
        extract_with=["gunzip -c zlib-1.3.1.tar.gz | tar xf -"],
        configure=["./configure --prefix=/opt/demo"],
        build=["$(MAKE)"],
        install=["$(MAKE) install"],
        environment={"CFLAGS": "-O2"},
    )


@pytest.fixture()
def foo_component() -> Component:
    return Component(
        "foo",
        version="1.0",
        extract_with=["gunzip -c foo-1.0.tar.gz | tar xf -"],
        configure=["./configure --prefix=/opt/demo"],
        build=["$(MAKE)"],
        check=["$(MAKE) check"],
        install=["$(MAKE) install"],
        build_requires=["zlib", "libc-devel"],
    )


@pytest.fixture()
def bar_component() -> Component:
    return Component(
        "bar",
        extract_with=["gunzip -c bar.tar.gz | tar xf -"],
        build=["$(MAKE)"],
        install=["$(MAKE) install DESTDIR=$(workdir)/bar-stage"],
        cacheable=True,
    )


@pytest.fixture()
def project(zlib_component, foo_component, bar_component) -> Project:
    return Project("demo", [zlib_component, foo_component, bar_component])


@pytest.fixture()
def demo_manifest_content() -> str:
    return textwrap.dedent(
        """\
    project:
      name: demo
      cleanup: true
      settings:
        skipcheck: false
    platform:
      name: el-9-x86_64
      tools:
        make: gmake
    components:
      - name: zlib
        version: 1.3.1
        dirname: zlib-1.3.1
        extract-with: ["gunzip -c zlib-1.3.1.tar.gz | tar xf -"]
        configure: ["./configure --prefix=/opt/demo"]
        build: ["$(MAKE)"]
        install: ["$(MAKE) install"]
      - name: openssl
        build-requires: [zlib, perl]
        build-dir: build
        environment: {CFLAGS: "-O2"}
        extract-with: "gunzip -c openssl.tar.gz | tar xf -"
        configure: ../config
        build: $(MAKE)
        install: $(MAKE) install DESTDIR=$(workdir)/openssl-stage
        patches:
          - path: patches/openssl/fix.patch
            after: unpack
        cacheable: true
    """
    )
