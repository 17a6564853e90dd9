import yaml
from pathlib import Path

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

def load_prompt(name: str, key: str = "content") -> str:
    # Prioritize .yaml for structured prompts
    yaml_path = PROMPTS_DIR / f"{name}.yaml"
    if yaml_path.exists():
        with open(yaml_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
            return data.get(key, "")

    # Fallback to .md
    md_path = PROMPTS_DIR / f"{name}.md"
    if md_path.exists():
        with open(md_path, "r", encoding="utf-8") as f:
            return f.read()

    raise FileNotFoundError(f"Prompt {name} not found as .yaml or .md")
