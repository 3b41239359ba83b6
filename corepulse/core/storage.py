import json
import logging
import os
from typing import Any, Dict, Union

logger = logging.getLogger(__name__)


class MemoryStorage:
    """Armazenamento chave/valor em memória (testes e sessões descartáveis)."""

    def __init__(self, initial: Union[Dict[str, Any], None] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """
    Mesmo contrato do MemoryStorage, persistido num arquivo JSON.
    Cada chat do Telegram tem o seu arquivo dentro de SESSION_DIR.
    """

    def __init__(self, path: str):
        self.path = path

    def _read(self) -> Dict[str, Any]:
        # Chat novo: ainda não há arquivo
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            # Arquivo corrompido vira sessão vazia
            logger.error(f"Erro ao ler sessão {self.path}: {e}")
            return {}

    def _write(self, data: Dict[str, Any]) -> None:
        # Cria SESSION_DIR na primeira gravação
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)

    def get(self, key: str) -> Any:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        # Relê o arquivo para não perder as outras chaves
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)
