"""InnoSistemas authentication backend."""
