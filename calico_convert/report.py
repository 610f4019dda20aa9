"""
Conversion report for the Calico migration parser

Renders a Markdown summary of an extracted config so it can be reviewed before
the new installation is created.
"""

import logging
from datetime import datetime

from jinja2 import Template

log = logging.getLogger("calico-migration.report")

REPORT_TEMPLATE = """# Calico Installation Conversion Report

Generated: {{ generated }}
Source: {{ source }}

## Networking

- MTU: {{ config.mtu if config.mtu is not none else "default" }}
- Host ports: {{ config.host_ports or "default" }}
- IPv4 address autodetection: {{ describe(config.node_address_autodetection_v4) }}
- IPv6 address autodetection: {{ describe(config.node_address_autodetection_v6) }}
- IPv4 pool encapsulation: {{ config.ipv4_encapsulation or "default" }}

## IP Pools

{% if config.ip_pools is none -%}
No pools configured, the default pools will be created.
{%- elif not config.ip_pools -%}
No pools will be created.
{%- else -%}
| CIDR | Family |
|------|--------|
{% for pool in config.ip_pools -%}
| {{ pool.cidr }} | IPv{{ pool.version }} |
{% endfor -%}
{%- endif %}

## Felix Settings

{% if config.felix_env_vars -%}
The following Felix environment variables are carried over:

{% for env in config.felix_env_vars -%}
- `{{ env.name }}`: `{{ env.value }}`
{% endfor -%}
{%- else -%}
No Felix environment variables to carry over.
{%- endif %}
"""


def describe_autodetection(method):
    if method is None:
        return "default"
    if method.first_found:
        return "first-found"
    if method.interface is not None:
        return f"interface={method.interface}"
    if method.can_reach is not None:
        return f"can-reach={method.can_reach}"
    return f"skip-interface={method.skip_interface}"


def render_report(config, source):
    """
    Render the conversion report.

    Args:
        config (ExtractedConfig): The extracted config
        source (str): Where the config was read from, e.g. a context or manifest path

    Returns:
        str: Report in Markdown
    """
    template = Template(REPORT_TEMPLATE)
    return template.render(
        config=config,
        source=source,
        describe=describe_autodetection,
        generated=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
    )


def write_report(config, source, output_file):
    with open(output_file, "w") as f:
        f.write(render_report(config, source))
    log.info(f"Conversion report written to {output_file}")
