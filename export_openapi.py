import json
from pathlib import Path

from ipgeo.main import app


def main() -> None:
    schema = app.openapi()
    out_path = Path("openapi") / "ipgeo.openapi.json"
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(schema, indent=2))
    print(f"Wrote {out_path} ({len(schema.get('paths', {}))} paths)")  # noqa: T201


if __name__ == "__main__":
    main()
