import json
from pathlib import Path

import pytest

from m365_domain_remediation import __main__ as cli
from m365_domain_remediation.config import EngineConfig
from m365_domain_remediation.profiles import ProfileStore, TenantProfile, resolve_profile
from m365_domain_remediation.remediation import InvalidConfiguration


def test_config_file_loading(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "auth": {"mode": "certificate", "certificate": {
            "tenant_id": "t", "client_id": "c", "certificate_path": "./cert.txt",
        }},
        "remediation": {"source_domain": "contoso.com", "dry_run": True, "unknown": 1},
        "output": {"formats": ["csv"]},
        "verbose": True,
    }))
    config = EngineConfig.from_file(path)
    assert config.auth.certificate.certificate_path == "./cert.txt"
    assert config.remediation.source_domain == "contoso.com"
    assert config.remediation.dry_run is True
    assert config.output.formats == ["csv"]
    assert config.verbose is True


def test_profile_store_roundtrip(tmp_path):
    path = tmp_path / "profiles.json"
    store = ProfileStore.load(path)
    store.add(TenantProfile("prod", "tid", "cid", fallback_domain="contoso.onmicrosoft.com"))
    store.add(TenantProfile("dev", "tid2", "cid2"))

    loaded = ProfileStore.load(path)
    assert loaded.default_profile == "prod"
    assert loaded.get("PROD").fallback_domain == "contoso.onmicrosoft.com"
    assert resolve_profile(path=path).name == "prod"

    assert loaded.remove("prod")
    assert ProfileStore.load(path).default_profile == "dev"
    assert not loaded.set_default("missing")


def test_corrupt_profiles_file_gives_empty_store(tmp_path):
    path = tmp_path / "profiles.json"
    path.write_text("{not json")
    assert ProfileStore.load(path).profiles == {}


def test_cli_flags_build_config(tmp_path):
    args = cli.parse_args([
        "--source-domain", "Contoso.com",
        "--tenant-id", "tid", "--client-id", "cid",
        "--dry-run", "--ensure-lowercase-alias",
        "--output-dir", str(tmp_path), "--formats", "csv", "json",
    ])
    config = cli.build_config(args)
    assert config.auth.certificate.tenant_id == "tid"
    assert config.auth.certificate.certificate_path == "./base64.txt"
    assert config.remediation.source_domain == "Contoso.com"
    assert config.remediation.dry_run
    assert config.remediation.ensure_lowercase_alias
    assert config.output.run_dir == Path(tmp_path)
    assert config.output.formats == ["csv", "json"]


def test_what_if_alias():
    args = cli.parse_args(["-s", "contoso.com", "--what-if"])
    assert args.dry_run


def test_profile_supplies_fallback_domain():
    args = cli.parse_args(["-s", "contoso.com", "--delegated"])
    profile = TenantProfile("prod", "tid", "cid", fallback_domain="contoso.onmicrosoft.com")
    config = cli.build_config(args, profile)
    assert config.auth.mode == "delegated"
    assert config.auth.delegated.client_id == "cid"
    assert config.remediation.fallback_domain == "contoso.onmicrosoft.com"


def test_missing_source_domain_is_a_configuration_error():
    args = cli.parse_args(["--tenant-id", "tid", "--client-id", "cid"])
    with pytest.raises(InvalidConfiguration):
        cli.build_config(args)


def test_missing_credentials_is_a_configuration_error():
    args = cli.parse_args(["-s", "contoso.com"])
    with pytest.raises(InvalidConfiguration):
        cli.build_config(args, None)
