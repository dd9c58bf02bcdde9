from types import SimpleNamespace

import pytest

from sitemigrate.utils.commands import command
from sitemigrate.utils.config import SSHOptions, load_migration_config, normalize_compression
from sitemigrate.utils.errors import ConfigurationError
from sitemigrate.utils.index import load_root_config

ROOT = {
    "debug": False,
    "config": {
        "paths": {"sites_root": "/var/opt", "staging_root": None},
        "ssh": {"user": "root", "port": 22, "timeout": 30, "use_agent": True},
        "dns": {"ttl": 120, "proxied": True},
        "archive": {"compression": "xz"},
    },
}


class TestCommands:
    def test_render_quotes_arguments(self):
        assert command("test", "-d", "/var/opt/my site").render() == "test -d '/var/opt/my site'"

    def test_injection_is_quoted(self):
        rendered = command("rm", "-rf", "/tmp/x; reboot").render()
        assert rendered == "rm -rf '/tmp/x; reboot'"

    def test_chain(self):
        chain = command("mkdir", "-p", "/archive").then(command("mv", "/a", "/archive/a"))
        assert chain.render() == "mkdir -p /archive && mv /a /archive/a"
        assert chain.argv() == ["sh", "-c", chain.render()]

    def test_chain_of_chains(self):
        chain = command("true").then(command("a")).then(command("b").then(command("c")))
        assert chain.render() == "true && a && b && c"

    def test_arguments_become_strings(self):
        assert command("tar", 1, 2).args == ("1", "2")


class TestSSHOptions:
    def test_default_shell(self):
        assert SSHOptions().rsync_shell() == "ssh -o ConnectTimeout=30"

    def test_port_and_key(self):
        shell = SSHOptions(port=2222, key_path="/keys/id_ed25519", timeout=10).rsync_shell()
        assert shell == "ssh -p 2222 -i /keys/id_ed25519 -o ConnectTimeout=10"


class TestLoadMigrationConfig:
    def test_defaults(self):
        config = load_migration_config(None, env={}, root_config=ROOT)
        assert config.sites_root == "/var/opt"
        assert config.ssh.user == "root"
        assert config.ssh.port == 22
        assert config.dns.ttl == 120
        assert config.dns.proxied is True
        assert not config.dns.has_credentials
        assert not config.archive.enabled
        assert not config.dry_run

    def test_shipped_defaults_load(self):
        root = load_root_config()
        assert root["config"]["paths"]["sites_root"] == "/var/opt"
        config = load_migration_config(None, env={}, root_config=root)
        assert config.database.service_prefix == "wp_"
        assert config.post_migration_command == "docker compose up -d"

    def test_env_then_args(self):
        env = {"CLOUDFLARE_EMAIL": "ops@example.com", "CLOUDFLARE_API_KEY": "k",
               "SITEMIGRATE_SITES_ROOT": "/srv/env", "SITEMIGRATE_SSH_USER": "deploy"}
        args = SimpleNamespace(sites_root="/srv/cli", cf_key="cli-key", port=2200)
        config = load_migration_config(args, env=env, root_config=ROOT)
        assert config.sites_root == "/srv/cli"
        assert config.dns.email == "ops@example.com"
        assert config.dns.api_key == "cli-key"
        assert config.dns.has_credentials
        assert config.ssh.user == "deploy"
        assert config.ssh.port == 2200

    def test_token_alone_is_enough(self):
        config = load_migration_config(None, env={"CLOUDFLARE_API_TOKEN": "t"}, root_config=ROOT)
        assert config.dns.has_credentials

    def test_proxied_flag(self):
        config = load_migration_config(SimpleNamespace(dns_proxied=False), env={}, root_config=ROOT)
        assert config.dns.proxied is False

    def test_force_delete_implies_delete(self):
        config = load_migration_config(SimpleNamespace(force_delete=True), env={}, root_config=ROOT)
        assert config.delete and config.force_delete

    def test_archive_options(self):
        args = SimpleNamespace(archive_dir="/archive", compress_archive=True, archive_compression="gzip")
        config = load_migration_config(args, env={}, root_config=ROOT)
        assert config.archive.enabled
        assert config.archive.compression == "gz"

    def test_unsupported_compression(self):
        with pytest.raises(ConfigurationError):
            load_migration_config(SimpleNamespace(archive_compression="bz2"), env={}, root_config=ROOT)

    def test_empty_global_delay_is_rejected(self):
        with pytest.raises(ConfigurationError):
            load_migration_config(SimpleNamespace(set_global_delay="  "), env={}, root_config=ROOT)

    def test_bad_port(self):
        with pytest.raises(ConfigurationError):
            load_migration_config(None, env={"SITEMIGRATE_SSH_PORT": "ssh"}, root_config=ROOT)

    def test_to_dict_masks_secrets(self):
        config = load_migration_config(None, env={"CLOUDFLARE_API_TOKEN": "secret"}, root_config=ROOT)
        assert config.to_dict()["dns"]["api_token"] == "***"

    @pytest.mark.parametrize("kind,expected", [("xz", "xz"), ("GZ", "gz"), ("gzip", "gz")])
    def test_normalize_compression(self, kind, expected):
        assert normalize_compression(kind) == expected
