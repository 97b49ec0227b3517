"""welldemux: demultiplex tagged sample wells and re-establish read pairs."""
