import nox

PYTHON_VERSIONS = ["3.11", "3.12", "3.13", "3.14"]

# The production extra pulls psycopg2-binary; its wheel is interpreter-specific
# and Poetry's cache can hand back one built for another Python.
_C_EXT_PACKAGES = ["psycopg2-binary"]


def _install(session: nox.Session) -> None:
    """Install courier with the test group and the production extra."""
    session.run(
        "poetry",
        "install",
        "--with",
        "test",
        "--all-extras",
        external=True,
    )
    session.run(
        "pip",
        "install",
        "--force-reinstall",
        "--no-cache-dir",
        *_C_EXT_PACKAGES,
    )


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.Session) -> None:
    """Run every courier test: domain, orchestrator, integration and scenarios."""
    _install(session)
    session.run("pytest", *session.posargs)


@nox.session(python=PYTHON_VERSIONS)
def tests_domain(session: nox.Session) -> None:
    """Event state machine, priority mapping, rules and configuration.

    Uses the memory database only; no queue transport or channel provider.
    """
    _install(session)
    session.run("pytest", "-m", "domain", *session.posargs)


@nox.session(python=PYTHON_VERSIONS)
def tests_orchestrator(session: nox.Session) -> None:
    """Dispatcher, delivery worker, dead-letter handler and sweeper on the in-memory transport."""
    _install(session)
    session.run("pytest", "-m", "application", *session.posargs)


@nox.session(python=PYTHON_VERSIONS[-1])
def tests_fast(session: nox.Session) -> None:
    """Everything except the slow integration tests (runtime threads, API, transports)."""
    _install(session)
    session.run("pytest", "-m", "not slow", *session.posargs)


@nox.session(python=PYTHON_VERSIONS)
def tests_bdd(session: nox.Session) -> None:
    """Delivery lifecycle scenarios: delivery, retry, dead-lettering and scheduling."""
    _install(session)
    session.run("pytest", "-m", "bdd", *session.posargs)
