"""Web Dashboard server instances."""
from __future__ import annotations

import posixpath
from collections.abc import Sequence
from dataclasses import dataclass

from .base import InstanceCommon, unsupported
from .registry import Component, ComponentRegistry

WEBSERVER = Component(
    name="webserver",
    aliases=("web-server", "webserver", "webservers", "webdashboard", "dashboards"),
    defaults=(
        ("home", "{{ join(root, 'webserver', 'webservers', name) }}"),
        ("install", "{{ join(root, 'packages', 'webserver') }}"),
        ("version", "active_prod"),
        ("program", "{{ join(install, version, 'JRE/bin/java') }}"),
        ("logdir", "logs"),
        ("logfile", "WebDashboard.log"),
        ("port", "8080"),
        ("libpaths", "{{ join(install, version, 'JRE/lib') }}:{{ join(install, version, 'lib64') }}"),
        ("maxmem", "1024M"),
    ),
    global_settings={
        "WebserverPortRange": "8080,8100-",
        "WebserverCleanList": "*.old",
        "WebserverPurgeList": "logs/*.log:webserver.txt",
    },
    directories=("packages/webserver", "webserver/webservers"),
)

JAR_NAME = "geneos-web-server.jar"


@dataclass(eq=False, slots=True)
class WebserverInstance:
    """A Java based Web Dashboard server."""

    common: InstanceCommon

    def __str__(self) -> str:
        return str(self.common)

    def command(self) -> tuple[list[str], dict[str, str]]:
        common = self.common
        home = common.home
        base = posixpath.join(common.get("install"), common.get("version"))
        args = [
            "-XX:+UseConcMarkSweepGC",
            f"-Xmx{common.get('maxmem')}",
            "-server",
            f"-Djava.io.tmpdir={home}/webapps",
            "-Djava.awt.headless=true",
            f"-DsecurityConfig={home}/config/security.xml",
            f"-Dcom.itrsgroup.configuration.file={home}/config/config.xml",
            f"-Dcom.itrsgroup.dashboard.resources.dir={base}/resources",
            f"-Djava.library.path={common.get('libpaths')}",
            f"-Dlog4j2.configurationFile=file:{home}/config/log4j2.properties",
            f"-Dworking.directory={home}",
            "-Dcom.itrsgroup.legacy.database.maxconnections=100",
            f"-Dcom.itrsgroup.sso.config.file={home}/config/sso.properties",
            f"-Djava.security.auth.login.config={home}/config/login.conf",
            "-Djava.security.krb5.conf=/etc/krb5.conf",
            "-Dcom.itrsgroup.bdosync=DataView,BDOSyncType_Level,DV1_SyncLevel_RedAmberCells",
            "-XX:+HeapDumpOnOutOfMemoryError",
            "-XX:HeapDumpPath=/tmp",
            "-jar",
            f"{base}/{JAR_NAME}",
            "-dir",
            f"{base}/webapps",
            "-port",
            common.get("port"),
            "-maxThreads",
            "254",
        ]
        return args, {}

    def rebuild(self, initial: bool = False) -> None:
        raise unsupported(self.common, "rebuild")

    def reload_signal(self) -> int:
        raise unsupported(self.common, "reload")

    def process_matches(self, argv: Sequence[str]) -> bool:
        """Match ``java`` running the dashboard jar from this instance's home."""
        if not argv or posixpath.basename(argv[0]) != "java":
            return False
        working_directory = f"-Dworking.directory={self.common.home}"
        has_working_directory = False
        has_jar = False
        for arg in argv[1:]:
            if arg == working_directory:
                has_working_directory = True
            if arg.endswith(JAR_NAME):
                has_jar = True
            if has_working_directory and has_jar:
                return True
        return False


def register(registry: ComponentRegistry) -> Component:
    return registry.register(WEBSERVER, WebserverInstance)


__all__ = ["JAR_NAME", "WEBSERVER", "WebserverInstance", "register"]
