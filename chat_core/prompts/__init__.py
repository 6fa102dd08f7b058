"""助手人设加载工具。

人设文本放在 prompts/<locale>/persona.md 中，``{name}`` 占位符
在加载时替换为配置的助手名字。加载结果是不可变的 Persona，
由调用方注入 PromptAssembler，测试可以直接构造替代人设。
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Tuple


PROMPTS_DIR = Path(__file__).resolve().parent


@dataclass(frozen=True)
class Persona:
    """助手人设。

    - name: 助手名字，也用于渲染历史中的助手角色与停止序列。
    - identity: 完整的人设描述。
    """

    name: str
    identity: str

    @property
    def preamble(self) -> str:
        """精简版人设：只取第一段身份声明。"""

        return self.identity.strip().split("\n\n", 1)[0].strip()

    @property
    def stop_sequences(self) -> Tuple[str, ...]:
        return ("User:", f"{self.name}:")


def load_persona(name: str, locale: str = "en") -> Persona:
    """根据名字和语言加载人设文本。"""

    fname = PROMPTS_DIR / locale / "persona.md"
    template = fname.read_text(encoding="utf-8")
    return Persona(name=name, identity=template.replace("{name}", name).strip())
