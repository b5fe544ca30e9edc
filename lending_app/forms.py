from django import forms

from .services import LoanPatch


class LoanPatchForm(forms.Form):
    """Partial loan edit: any field left out keeps its current value."""

    member_id = forms.IntegerField(required=False, min_value=1)
    item_id = forms.IntegerField(required=False, min_value=1)
    borrowed_at = forms.DateTimeField(required=False)
    due_date = forms.DateTimeField(required=False)
    returned_at = forms.DateTimeField(required=False)

    def to_patch(self):
        return LoanPatch(**self.cleaned_data)


class LoanCreateForm(LoanPatchForm):
    member_id = forms.IntegerField(min_value=1)
    item_id = forms.IntegerField(min_value=1)

    def clean(self):
        cleaned = super().clean()
        borrowed_at, due_date = cleaned.get("borrowed_at"), cleaned.get("due_date")
        if borrowed_at and due_date and due_date < borrowed_at:
            raise forms.ValidationError("due_date must not be before borrowed_at")
        return cleaned


class TotalCopiesForm(forms.Form):
    total_copies = forms.IntegerField(min_value=0)
