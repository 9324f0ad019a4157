"""
Narrador - Renderizador de videos narrados.
Convierte escenas, assets y voiceover en un video final con subtítulos animados.
"""

__version__ = "0.1.0"
