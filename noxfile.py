import nox

PYTHON_VERSIONS = ["3.11", "3.12", "3.13"]

_DOMAIN_TEST_DIRS = [
    "tests/charges/domain/",
    "tests/stock/domain/",
    "tests/wallet/domain/",
    "tests/giftcard/domain/",
    "tests/payout/domain/",
    "tests/suborder/domain/",
    "tests/order/domain/",
    "tests/payment/domain/",
    "tests/shared/domain/",
]


def _install(session: nox.Session) -> None:
    """Install the project with its test extra into the nox virtualenv."""
    session.install("-e", ".[test]")


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.Session) -> None:
    """Run full test suite across Python versions."""
    _install(session)
    session.run("pytest", *session.posargs)


@nox.session(python=PYTHON_VERSIONS)
def tests_domain(session: nox.Session) -> None:
    """Run domain-layer tests only (no infrastructure required)."""
    _install(session)
    session.run("pytest", *_DOMAIN_TEST_DIRS)


@nox.session(python=PYTHON_VERSIONS[-1])
def tests_api(session: nox.Session) -> None:
    """Run the HTTP API and BDD scenarios."""
    _install(session)
    session.run("pytest", "-m", "integration or bdd")
