#!/usr/bin/env python3
"""
bucketprobe command line

    bucketprobe crvd s3://my-bucket/ --endpoint http://localhost:9000
    bucketprobe suite s3://my-bucket/ --size --size-max 1G
    bucketprobe suite s3://my-bucket/ --unicode-emoji --dry-run
"""

import logging
from typing import Optional

import click

from bucketprobe import __version__
from bucketprobe.cases import (
    COUNT_MAX_DEFAULT,
    SIZE_MAX_DEFAULT,
    UNBOUNDED_COUNT,
    UNICODE_FAMILIES,
    KeyProbe,
    count_cases,
    size_cases,
    unicode_cases,
)
from bucketprobe.config import ProbeConfig, load_config
from bucketprobe.content import DEFAULT_CONTENT_LENGTH, DEFAULT_SEED
from bucketprobe.crvd import Crvd
from bucketprobe.errors import CleanupError, ConfigurationError, ProbeError
from bucketprobe.log import setup_logging
from bucketprobe.suite import Suite
from bucketprobe.target import open_target
from bucketprobe.units import format_bytes, parse_size

logger = logging.getLogger(__name__)

SIZE_HELP = """
Sizes may be exact byte counts or human-readable quantities such as "4K"
(4 KiB, 4096 bytes) or "3.5M" (3.5 MiB, 3670016 bytes). Units are binary:
B, K/KB/KiB, M/MB/MiB, G/GB/GiB and T/TB/TiB. Without a unit, bytes are
assumed.
"""


TARGET_OPTIONS = (
    click.option("--endpoint", "-e", help="S3 endpoint URL (default: AWS for the region)"),
    click.option("--region", "-r", help="S3 region"),
    click.option(
        "--config",
        "-C",
        "config_path",
        type=click.Path(dir_okay=False),
        help="YAML file with connection and tuning settings",
    ),
    click.option("--retries", type=int, help="Attempts per request on transient failures"),
    click.option("--workers", type=int, help="Parallel uploads while probing object counts"),
    click.option("--verbose", "-v", count=True, help="More logging (repeatable)"),
)


def target_options(fn):
    """Connection and tuning options shared by all commands"""
    for option in reversed(TARGET_OPTIONS):
        fn = option(fn)
    return fn


def configure(
    verbose: int,
    config_path: Optional[str],
    endpoint: Optional[str],
    region: Optional[str],
    retries: Optional[int],
    workers: Optional[int],
    suite_timeout: Optional[float] = None,
) -> ProbeConfig:
    setup_logging(verbose)
    try:
        config = load_config(
            config_path,
            endpoint=endpoint,
            region=region,
            retry_max_attempts=retries,
            workers=workers,
            suite_timeout=suite_timeout,
        )
    except ConfigurationError as e:
        raise click.ClickException(str(e))
    logger.debug("configuration:\n%s", config.pretty())
    return config


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, prog_name="bucketprobe")
def main():
    """Probe the practical limits of a cloud storage bucket"""


@main.command(
    "crvd",
    short_help="create, retrieve, verify, and delete an object",
    epilog=SIZE_HELP,
)
@click.argument("bucket_url")
@click.option(
    "--size",
    "-s",
    default=format_bytes(DEFAULT_CONTENT_LENGTH),
    show_default=True,
    help="Size of object to create",
)
@click.option("--key", "-k", help="Key to create (default: bucketprobe-crvd-TIMESTAMP.bin)")
@click.option(
    "--random-seed",
    type=int,
    default=DEFAULT_SEED,
    show_default=True,
    help="Seed for the random content generator",
)
@click.option("--keep", is_flag=True, default=False, help="Keep the object after verification")
@target_options
def crvd_command(bucket_url, size, key, random_seed, keep, **options):
    """
    Create, retrieve, verify, and delete an object in a cloud storage bucket.

    The object is a stream of pseudorandom bytes of the given size,
    generated from --random-seed so that runs are repeatable.
    """
    config = configure(**options)
    try:
        content_length = parse_size(size)
        target = open_target(bucket_url, config)
        job = Crvd(target, key, content_length, random_seed, retry=config.retry_policy())
        if keep:
            job.create_retrieve_verify()
            click.echo(
                f"{format_bytes(job.content_length)} object created, retrieved, and verified; "
                f"keeping {job.pretty()}"
            )
        else:
            job.create_retrieve_verify_delete()
            click.echo(
                f"{format_bytes(job.content_length)} object created, retrieved, verified, "
                f"and deleted ({job.pretty()})"
            )
    except CleanupError as e:
        raise click.ClickException(f"object verified but not deleted: {e.cause}")
    except ProbeError as e:
        raise click.ClickException(str(e))


@main.command("suite", short_help="run a suite of test cases", epilog=SIZE_HELP)
@click.argument("bucket_url")
@click.option("--size", "-s", is_flag=True, help="Test object sizes")
@click.option(
    "--size-max",
    default=format_bytes(SIZE_MAX_DEFAULT),
    show_default=True,
    help="Largest object size to try",
)
@click.option("--count", "-c", is_flag=True, help="Test object counts per prefix")
@click.option(
    "--count-max",
    type=int,
    default=COUNT_MAX_DEFAULT,
    show_default=True,
    help="Largest number of objects to create, or -1 for no limit",
)
@click.option("--unicode", "-u", "unicode_all", is_flag=True, help="Run all Unicode key tests")
@click.option("--unicode-categories", is_flag=True, help="Test Unicode general categories")
@click.option("--unicode-scripts", is_flag=True, help="Test Unicode scripts")
@click.option("--unicode-properties", is_flag=True, help="Test Unicode properties")
@click.option("--unicode-emoji", is_flag=True, help="Test emoji properties and sequences")
@click.option("--unicode-invalid", is_flag=True, help="Test invalid characters and UTF-8")
@click.option(
    "--dry-run",
    "-n",
    is_flag=True,
    help="List the test cases that would run without making any requests",
)
@click.option("--timeout", type=float, help="Stop starting new cases after this many seconds")
@target_options
@click.pass_context
def suite_command(
    ctx,
    bucket_url,
    size,
    size_max,
    count,
    count_max,
    unicode_all,
    unicode_categories,
    unicode_scripts,
    unicode_properties,
    unicode_emoji,
    unicode_invalid,
    dry_run,
    timeout,
    **options,
):
    """
    Run a suite of test cases investigating the limits of a storage service:
    maximum object size (--size), maximum number of objects under one
    prefix (--count), and Unicode key support (--unicode, or one of the
    --unicode-* families). With none of these, every case runs.

    Object size and count limits are found by binary search, which assumes
    that once a value fails every larger value fails too.

    Invalid Unicode results depend on how the client turns keys into
    bytes, and may differ from other client libraries.
    """
    config = configure(suite_timeout=timeout, **options)
    flags = {
        "categories": unicode_categories,
        "scripts": unicode_scripts,
        "properties": unicode_properties,
        "emoji": unicode_emoji,
        "invalid": unicode_invalid,
    }
    run_all = not (size or count or unicode_all or any(flags.values()))

    try:
        if count_max == -1:
            count_max = UNBOUNDED_COUNT
        elif count_max < 0:
            raise ConfigurationError(f"--count-max must be -1 or a non-negative count, got {count_max}")
        size_max_bytes = parse_size(size_max)
        retry = config.retry_policy()

        cases = []
        if run_all or size:
            cases.extend(size_cases(size_max_bytes, retry))
        if run_all or count:
            cases.extend(count_cases(count_max, retry, workers=config.workers))
        if run_all or unicode_all:
            families = UNICODE_FAMILIES
        else:
            families = [name for name in UNICODE_FAMILIES if flags[name]]
        if families:
            cases.extend(unicode_cases(families, KeyProbe(retry)))

        target = open_target(bucket_url, config)
        suite = Suite(cases, target, dry_run=dry_run, retry=retry, timeout=config.suite_timeout)
        report = suite.run()
    except ProbeError as e:
        raise click.ClickException(str(e))

    if report.interrupted:
        click.echo("Interrupted.", err=True)
        ctx.exit(130)
    if report.aborted is not None:
        raise click.ClickException(f"suite aborted: {report.aborted}")


if __name__ == "__main__":
    main()
