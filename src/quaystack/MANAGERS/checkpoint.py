# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
The manual configuration checkpoint: tell the operator how to produce the
registry configuration bundle, wait for them, then check the bundle exists.
"""
import logging
import os
from typing import Callable, Dict, Optional

import click
from jinja2 import StrictUndefined, Template

from ..MODELS.errors import CheckpointArtifactMissing
from ..MODELS.stack_config import StackConfig

logger = logging.getLogger(__name__)

CONFIG_TOOL_IMAGE = "quay.io/projectquay/quay"
CONFIG_TOOL_PASSWORD = "secret"
CONFIG_TOOL_PORT = 8080

INSTRUCTIONS_TEMPLATE = """
========================================================================
     >>>>>>>>>   MANUAL ACTION REQUIRED   <<<<<<<<<
========================================================================

The '{{ db_name }}' and '{{ cache_name }}' services are now running.
You must now generate 'config.yaml' with the web config tool.

1. Run the following command in a SEPARATE terminal:

   {{ runtime }} run --rm -it --name quay_config --network {{ network }} -p {{ port }}:{{ port }} {{ tool_image }} config {{ tool_password }}

2. Open http://localhost:{{ port }} in your browser.
3. Log in with credentials: quayconfig / {{ tool_password }}
4. Click 'Start New Registry Setup' and use these exact values:

   --- Database Setup ---
   Database Type: Postgres
   Host:      {{ db_host }}
   User:      {{ db_user }}
   Password:  {{ db_password }}
   Database:  {{ db_database }}
   (Click 'Validate Database Settings' and then 'Create Super User')

   --- Main Config Screen ---
   Server Hostname: localhost:{{ port }}
   TLS:             None (Not for Production)
   Redis Hostname:  {{ cache_host }}
   Redis Password:  {{ cache_password }}

5. Click 'Save Configuration Changes' at the bottom.
6. On the next screen, click 'Download Configuration'.
7. Save the '{{ artifact_name }}' file to this *exact* location:
   {{ artifact_path }}

8. After saving, stop the 'quay_config' container (CTRL-C) in the other terminal.
"""

GATE_PROMPT = "Press [Enter] ONLY after you have saved the config file to the location above..."


def press_enter(message: str) -> None:
    """Blocks on stdin until the operator presses Enter."""
    click.prompt(message, default="", show_default=False, prompt_suffix="")


class CheckpointCoordinator:
    """
    Hands the workflow to the operator and takes it back once they confirm.

    The wait is a blocking read of stdin with no timeout. The artifact is
    checked once, after the operator confirms; it is not polled for.
    """

    def __init__(
        self,
        config: StackConfig,
        runtime_binary: str = "podman",
        wait_for_operator: Callable[[str], object] = press_enter,
        echo: Callable[[str], None] = click.echo,
    ):
        self.config = config
        self.runtime_binary = runtime_binary
        self.wait_for_operator = wait_for_operator
        self.echo = echo

    def render_instructions(self, addresses: Dict[str, str], artifact_path: Optional[str] = None) -> str:
        """
        Fills the instructions with live values.

        :param addresses: Service name to address, as recorded at startup.
            Must hold ``postgres`` and ``redis``.
        :param artifact_path: Where the bundle must be saved.
        :raises KeyError: If an address is missing.
        """
        c = self.config
        artifact_path = artifact_path or str(c.checkpoint_archive)
        template = Template(INSTRUCTIONS_TEMPLATE, undefined=StrictUndefined)
        return template.render(
            db_name="postgres",
            cache_name="redis",
            runtime=self.runtime_binary,
            network=c.network,
            port=CONFIG_TOOL_PORT,
            tool_image=CONFIG_TOOL_IMAGE,
            tool_password=CONFIG_TOOL_PASSWORD,
            db_host=addresses["postgres"],
            db_user=c.postgres_user,
            db_password=c.postgres_password,
            db_database=c.postgres_db,
            cache_host=addresses["redis"],
            cache_password=c.redis_password,
            artifact_name=os.path.basename(artifact_path),
            artifact_path=artifact_path,
        )

    def run(self, instructions: str, artifact_path: Optional[str] = None) -> str:
        """
        Shows the instructions, blocks for the operator, then verifies the
        artifact.

        :return: Path of the artifact.
        :raises CheckpointArtifactMissing: If the artifact is not a file once
            the operator continues.
        """
        artifact_path = artifact_path or str(self.config.checkpoint_archive)
        logger.info("[checkpoint] Waiting for operator to save %s", artifact_path)
        self.echo(instructions)
        self.wait_for_operator(GATE_PROMPT)

        if not os.path.isfile(artifact_path):
            raise CheckpointArtifactMissing(artifact_path)
        logger.info("[checkpoint] Found %s.", artifact_path)
        return artifact_path
