import tomllib
import typing as t


def simple_frontmatter_parser(content: str) -> dict[str, str]:
    """
    Read `key: value` lines, stopping at the first line which is not one.
    Values are kept verbatim apart from surrounding whitespace, so titles may
    themselves contain colons.
    """
    meta = {}
    for line in content.splitlines():
        if not line.strip():
            continue
        if ':' not in line:
            break
        key, value = line.split(':', 1)
        if not key.strip().isidentifier():
            break
        meta[key.strip()] = value.strip()

    return meta


class FrontMatterError(ValueError):
    """
    Raised by front matter parsers for blocks they cannot read.
    """


def _stringify(data: t.Any) -> dict[str, str]:
    if not isinstance(data, dict):
        raise FrontMatterError('front matter is not a mapping')
    # Empty values count as missing.
    return {str(k): str(v) for k, v in data.items() if v is not None}


def get_toml_frontmatter_parser():
    def parse(content: str):
        try:
            return _stringify(tomllib.loads(content))
        except tomllib.TOMLDecodeError as e:
            raise FrontMatterError(str(e)) from e
    return parse


def get_yaml_frontmatter_parser():
    from ruamel.yaml import YAML
    from ruamel.yaml.error import YAMLError
    yaml = YAML(typ='safe')

    def parse(content: str):
        try:
            return _stringify(yaml.load(content) or {})
        except YAMLError as e:
            raise FrontMatterError(str(e)) from e
    return parse


FrontMatterParser = t.Callable[[str], dict[str, str]]
FrontMatterParserName = t.Literal['simple', 'toml', 'yaml']

FRONTMATTER_PARSER_FACTORIES: dict[FrontMatterParserName, t.Callable[[], FrontMatterParser]] = {
    'simple': lambda: simple_frontmatter_parser,
    'toml': get_toml_frontmatter_parser,
    'yaml': get_yaml_frontmatter_parser,
}


def get_frontmatter_parser(parser: FrontMatterParserName | FrontMatterParser) -> FrontMatterParser:
    if callable(parser):
        return parser
    return FRONTMATTER_PARSER_FACTORIES[parser]()
