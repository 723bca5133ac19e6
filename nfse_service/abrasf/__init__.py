from .retorno import NFSeRetorno, processar_retorno
from .webservice import NFSeWebService

__all__ = [
    "NFSeRetorno",
    "NFSeWebService",
    "processar_retorno",
]
