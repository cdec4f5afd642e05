"""Application services that own short database transactions."""
