"""Embedded SQL migrations, applied in version order by the startup gate."""
