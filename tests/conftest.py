import pytest

import veo_factory


@pytest.fixture(scope="session")
def signer():
    return veo_factory.make_self_signed_signer("Records Officer")


@pytest.fixture(scope="session")
def second_signer():
    return veo_factory.make_self_signed_signer("Records Manager")


@pytest.fixture(scope="session")
def chained_signer():
    return veo_factory.make_chained_signer("Agency Signer", "Agency Root CA")


@pytest.fixture(scope="session")
def lock_signer():
    return veo_factory.make_self_signed_signer("Lock Officer")
