import argparse
import json
import logging
import os
import msgspec
import numpy
import yaml
from faker import Faker
from tqdm.auto import tqdm
from typing import Any, Callable, Iterable

from ordtree.btree import OrderedTree
from ordtree.errors import OrderedTreeError


logger = logging.getLogger("main.py")

CONFIG_FILE = "./ordtree.yml"
DEFAULTS: dict[str, Any] = {"order": 3, "count": 10, "random": True, "kind": "int", "seed": None}


class NameKey(msgspec.Struct, frozen=True, order=True):
    """
        Key for the "name" mode
        - compared by full_name, immutable
    """
    full_name: str


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
                                    prog="ordtree",
                                    description="Fill a B-Tree with typed in or random values and print it",
                                    epilog=''
                                    )
    parser.add_argument("-c", "--config", default=None, help=f"yaml config, {CONFIG_FILE} if present")
    parser.add_argument("-o", "--order", type=int, default=None)
    parser.add_argument("-n", "--count", type=int, default=None)
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("-r", "--random", dest="random", action="store_const", const=True, default=None)
    mode.add_argument("-m", "--manual", dest="random", action="store_const", const=False)
    parser.add_argument("--kind", choices=["int", "name"], default=None)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def load_config(path: str | None, args: argparse.Namespace | None = None) -> dict[str, Any]:
    """built-in defaults <- yaml file <- command line"""
    config = dict(DEFAULTS)
    if path is None and os.path.exists(CONFIG_FILE):
        path = CONFIG_FILE
    if path is not None:
        with open(path) as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"{path}: expected a mapping, got {type(loaded).__name__}")
        config.update(loaded)
    if args is not None:
        config.update({k: v for k, v in vars(args).items() if k in DEFAULTS and v is not None})
    return config


def random_elements(kind: str, count: int, seed: int | None = None) -> Iterable[Any]:
    if kind == "name":
        Faker.seed(seed)
        fake = Faker()
        return (NameKey(fake.name()) for _ in range(count))
    if seed is not None:
        numpy.random.seed(seed)
    return (int(numpy.random.randint(1, 10001)) for _ in range(count))


def read_elements(kind: str, count: int, read: Callable[[str], str] = input) -> Iterable[Any]:
    for i in range(1, count + 1):
        raw = read(f"Enter element {i} : ").strip()
        yield NameKey(raw) if kind == "name" else int(raw)


def run(argv: list[str] | None = None, read: Callable[[str], str] = input) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s")

    try:
        config = load_config(args.config, args)
    except (OSError, ValueError, yaml.YAMLError) as ex:
        logger.error(f"cannot load config: {ex}")
        return 2
    logger.info((
        "Config:\n" + json.dumps(config, indent=2, ensure_ascii=False, default=str) + "\n"
        ).replace("\n", "\n | "))

    count = config["count"]
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        logger.error(f"count must be a non-negative integer: {count!r}")
        return 2
    if config["kind"] not in ("int", "name"):
        logger.error(f"unknown kind: {config['kind']!r}")
        return 2
    seed = config["seed"]
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        logger.error(f"seed must be an integer: {seed!r}")
        return 2

    try:
        tree: OrderedTree[Any] = OrderedTree(config["order"])
        if config["random"]:
            elements = random_elements(config["kind"], count, config["seed"])
        else:
            elements = read_elements(config["kind"], count, read)
        for element in tqdm(elements, total=count, disable=not config["random"]):
            tree.insert(element)
    except OrderedTreeError as ex:
        logger.error(f"{type(ex).__name__}: {ex}")
        return 2
    except (ValueError, EOFError) as ex:
        logger.error(f"bad input: {ex}")
        return 2

    if (errors := tree.validate()):
        logger.warning(f"tree validation failed: {errors}")
    logger.debug(repr(tree))

    if tree.is_empty():
        print("The tree is empty....")
    else:
        print(tree)
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
