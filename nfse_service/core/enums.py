# core/enums.py
from enum import Enum


class Ambiente(str, Enum):
    HOMOLOGACAO = "2"
    PRODUCAO = "1"
