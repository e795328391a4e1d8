"Tour resolution engine: translation overlay, batch loading, group assignment and the processing pipeline."
