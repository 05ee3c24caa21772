"""Rule evaluation, error modelling and the validation pipeline."""
