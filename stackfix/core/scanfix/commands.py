"""
Platform commands — the only place OS-specific syntax lives.

Every supported tool maps each platform to a PlatformCommands record:

    check      exits zero when the tool is present
    install    installs it (None: the operator has to do it)
    start      starts its service (None: nothing to start)
    manual_fix what the operator is told when we can't do it ourselves
"""

from __future__ import annotations

from dataclasses import dataclass

from stackfix.core.models.fix import Platform


@dataclass(frozen=True)
class PlatformCommands:
    """Check/install/start commands for one tool on one platform."""

    check: str
    manual_fix: str
    install: str | None = None
    start: str | None = None


_APT = "sudo apt-get update && sudo apt-get install -y"
_DNF = "sudo dnf install -y"

_DOCKER_DESKTOP = "https://www.docker.com/products/docker-desktop/"


COMMANDS: dict[str, dict[Platform, PlatformCommands]] = {
    "docker": {
        Platform.UBUNTU: PlatformCommands(
            check="which docker",
            install=(
                f"{_APT} docker.io && sudo systemctl enable docker"
                " && sudo systemctl start docker && sudo usermod -aG docker $USER"
            ),
            start="sudo systemctl start docker",
            manual_fix="Install Docker: curl -fsSL https://get.docker.com | sh",
        ),
        Platform.AMAZON_LINUX: PlatformCommands(
            check="which docker",
            install=(
                f"{_DNF} docker && sudo systemctl enable docker"
                " && sudo systemctl start docker && sudo usermod -aG docker $USER"
            ),
            start="sudo systemctl start docker",
            manual_fix="Install Docker: sudo dnf install -y docker",
        ),
        Platform.MAC: PlatformCommands(
            check="which docker",
            start="open -a Docker",
            manual_fix=f"Install Docker Desktop: {_DOCKER_DESKTOP}",
        ),
        Platform.WINDOWS: PlatformCommands(
            check="where docker",
            manual_fix=f"Install Docker Desktop from {_DOCKER_DESKTOP}",
        ),
    },
    "node": {
        Platform.UBUNTU: PlatformCommands(
            check="which node",
            install=f"{_APT} nodejs npm",
            manual_fix="Install Node.js: sudo apt-get install -y nodejs npm",
        ),
        Platform.AMAZON_LINUX: PlatformCommands(
            check="which node",
            install=f"{_DNF} nodejs npm",
            manual_fix="Install Node.js: sudo dnf install -y nodejs npm",
        ),
        Platform.MAC: PlatformCommands(
            check="which node",
            install="brew install node",
            manual_fix="Install Node.js: brew install node",
        ),
        Platform.WINDOWS: PlatformCommands(
            check="where node",
            manual_fix="Install Node.js from https://nodejs.org/",
        ),
    },
    "git": {
        Platform.UBUNTU: PlatformCommands(
            check="which git",
            install=f"{_APT} git",
            manual_fix="Install Git: sudo apt-get install -y git",
        ),
        Platform.AMAZON_LINUX: PlatformCommands(
            check="which git",
            install=f"{_DNF} git",
            manual_fix="Install Git: sudo dnf install -y git",
        ),
        Platform.MAC: PlatformCommands(
            check="which git",
            install="brew install git",
            manual_fix="Install Git: brew install git",
        ),
        Platform.WINDOWS: PlatformCommands(
            check="where git",
            manual_fix="Install Git from https://git-scm.com/",
        ),
    },
    "pnpm": {
        Platform.UBUNTU: PlatformCommands(
            check="which pnpm",
            install="npm install -g pnpm",
            manual_fix="Install pnpm: npm install -g pnpm",
        ),
        Platform.AMAZON_LINUX: PlatformCommands(
            check="which pnpm",
            install="sudo npm install -g pnpm",
            manual_fix="Install pnpm: sudo npm install -g pnpm",
        ),
        Platform.MAC: PlatformCommands(
            check="which pnpm",
            install="npm install -g pnpm",
            manual_fix="Install pnpm: npm install -g pnpm",
        ),
        Platform.WINDOWS: PlatformCommands(
            check="where pnpm",
            install="npm install -g pnpm",
            manual_fix="Install pnpm: npm install -g pnpm",
        ),
    },
    "certbot": {
        Platform.UBUNTU: PlatformCommands(
            check="which certbot",
            install=f"{_APT} certbot",
            manual_fix="Install certbot: sudo apt-get install -y certbot",
        ),
        Platform.AMAZON_LINUX: PlatformCommands(
            check="which certbot",
            install=f"{_DNF} certbot",
            manual_fix="Install certbot: sudo dnf install -y certbot",
        ),
        Platform.MAC: PlatformCommands(
            check="which certbot",
            install="brew install certbot",
            manual_fix="Install certbot: brew install certbot",
        ),
        Platform.WINDOWS: PlatformCommands(
            check="where certbot",
            manual_fix="Install certbot from https://certbot.eff.org/",
        ),
    },
    "aws-cli": {
        Platform.UBUNTU: PlatformCommands(
            check="which aws",
            install="sudo snap install aws-cli --classic",
            manual_fix="Install the AWS CLI: sudo snap install aws-cli --classic",
        ),
        Platform.AMAZON_LINUX: PlatformCommands(
            check="which aws",
            install=f"{_DNF} awscli",
            manual_fix="Install the AWS CLI: sudo dnf install -y awscli",
        ),
        Platform.MAC: PlatformCommands(
            check="which aws",
            install="brew install awscli",
            manual_fix="Install the AWS CLI: brew install awscli",
        ),
        Platform.WINDOWS: PlatformCommands(
            check="where aws",
            manual_fix="Install the AWS CLI from https://aws.amazon.com/cli/",
        ),
    },
}

TOOLS: tuple[str, ...] = tuple(COMMANDS)


def get_commands(tool: str, platform: Platform | str) -> PlatformCommands:
    """Commands for ``tool`` on ``platform``.

    Raises:
        KeyError: unknown tool or platform.
    """
    try:
        per_platform = COMMANDS[tool]
    except KeyError:
        raise KeyError(f"Unknown tool: {tool}") from None
    try:
        return per_platform[Platform(platform)]
    except ValueError:
        raise KeyError(f"Unknown platform: {platform}") from None
