"""Tests for tag and address actions, and client construction."""

import pytest

from ec2_query.client import EC2
from ec2_query.config_loader import ConfigError
from ec2_query.filters import Filter
from ec2_query.models import ClientConfig, Credentials, Tag
from tests import ec2_responses
from tests.conftest import FakeEC2


class TestCreateTags:
    def test_request(self, ec2: EC2, fake_ec2: FakeEC2) -> None:
        fake_ec2.respond(200, ec2_responses.CREATE_TAGS)
        resp = ec2.create_tags(
            ["ami-1a2b3c4d", "i-7f4d3a2b"],
            [Tag(key="webserver"), Tag(key="stack", value="Production")],
        )

        assert fake_ec2.params == {
            **fake_ec2.params,
            "Action": "CreateTags",
            "ResourceId.1": "ami-1a2b3c4d",
            "ResourceId.2": "i-7f4d3a2b",
            "Tag.1.Key": "webserver",
            "Tag.1.Value": "",
            "Tag.2.Key": "stack",
            "Tag.2.Value": "Production",
        }
        assert resp.return_value is True
        assert resp.request_id == "7a62c49f-347e-4fc4-9331-6e8eEXAMPLE"


class TestDescribeAddresses:
    def test_request(self, ec2: EC2, fake_ec2: FakeEC2) -> None:
        fake_ec2.respond(200, ec2_responses.DESCRIBE_ADDRESSES)
        filters = Filter()
        filters.add("domain", "standard")
        ec2.describe_addresses(["i-f15ebb98"], filters)

        assert fake_ec2.params["Action"] == "DescribeAddresses"
        assert fake_ec2.params["InstanceId.1"] == "i-f15ebb98"
        assert fake_ec2.params["Filter.1.Name"] == "domain"

    def test_decoded(self, ec2: EC2, fake_ec2: FakeEC2) -> None:
        fake_ec2.respond(200, ec2_responses.DESCRIBE_ADDRESSES)
        resp = ec2.describe_addresses()

        assert [a.public_ip for a in resp.addresses] == ["203.0.113.41", "198.51.100.2"]
        assert resp.addresses[0].instance_id == "i-f15ebb98"
        assert resp.addresses[1].instance_id == ""
        assert resp.addresses[1].domain == "standard"


class TestClientConstruction:
    def test_from_config_with_credentials(self, fake_ec2: FakeEC2) -> None:
        config = ClientConfig(
            region="eu-west-1",
            credentials=Credentials(access_key="AK", secret_key="SK"),
        )
        with EC2.from_config(config, http_client=fake_ec2.client) as ec2:
            assert ec2.region.name == "eu-west-1"
            assert ec2.region.ec2_endpoint == "https://ec2.eu-west-1.amazonaws.com"

    def test_from_config_reads_environment(
        self, fake_ec2: FakeEC2, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("AWS_ACCESS_KEY_ID", "ENVKEY")
        monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "envsecret")
        fake_ec2.respond(200, ec2_responses.REBOOT_INSTANCES)

        with EC2.from_config(ClientConfig(), http_client=fake_ec2.client) as ec2:
            ec2.reboot_instances("i-1")

        assert fake_ec2.params["AWSAccessKeyId"] == "ENVKEY"
        assert fake_ec2.requests[-1].url.host == "ec2.us-east-1.amazonaws.com"

    def test_from_config_endpoint_override(self, fake_ec2: FakeEC2) -> None:
        config = ClientConfig(
            region="private",
            endpoint="http://127.0.0.1:8773/services/Cloud",
            credentials=Credentials(access_key="AK", secret_key="SK"),
        )
        fake_ec2.respond(200, ec2_responses.REBOOT_INSTANCES)
        with EC2.from_config(config, http_client=fake_ec2.client) as ec2:
            ec2.reboot_instances("i-1")

        url = fake_ec2.requests[-1].url
        assert url.path == "/services/Cloud"
        assert url.port == 8773

    def test_from_config_unknown_region(self, fake_ec2: FakeEC2) -> None:
        config = ClientConfig(
            region="mars-north-1",
            credentials=Credentials(access_key="AK", secret_key="SK"),
        )
        with pytest.raises(ConfigError, match="Unknown region 'mars-north-1'"):
            EC2.from_config(config, http_client=fake_ec2.client)

    def test_close_keeps_borrowed_client_open(self, fake_ec2: FakeEC2, credentials, region) -> None:
        with EC2(credentials, region, http_client=fake_ec2.client):
            pass
        assert not fake_ec2.client.is_closed
