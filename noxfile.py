import nox

PYTHON_VERSIONS = ["3.11", "3.12", "3.13"]

# psycopg2-binary ships a compiled extension; reinstall it per interpreter so
# Poetry's wheel cache never serves one built for another Python.
_C_EXT_PACKAGES = ["psycopg2-binary"]


def _install(session: nox.Session, *extras: str) -> None:
    args = ["poetry", "install"]
    args += [f"--extras={extra}" for extra in extras] if extras else ["--all-extras"]
    session.run(*args, external=True)
    if not extras or "postgres" in extras:
        session.run("pip", "install", "--force-reinstall", "--no-cache-dir", *_C_EXT_PACKAGES)


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.Session) -> None:
    """Full suite."""
    _install(session)
    session.run("pytest", *session.posargs)


@nox.session(python=PYTHON_VERSIONS[-1])
def domain(session: nox.Session) -> None:
    """Aggregates, state machines and the confirmation policy. No I/O."""
    _install(session, "test")
    session.run("pytest", "-m", "domain", *session.posargs)


@nox.session(python=PYTHON_VERSIONS[-1])
def gateways(session: nox.Session) -> None:
    """Provider adapters against mocked HTTP transports."""
    _install(session, "test")
    session.run("pytest", "-m", "gateway", *session.posargs)


@nox.session(python=PYTHON_VERSIONS[-1])
def acceptance(session: nox.Session) -> None:
    """Gherkin scenarios for confirmations, tolerance, capture and expiry."""
    _install(session, "test")
    session.run("pytest", "-m", "bdd", *session.posargs)
