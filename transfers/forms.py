from django import forms
from django.forms import formset_factory

from core.conf import inventory_setting
from inventory.services import kg_to_grams
from storage.models import StorageLocation


class TransferLineForm(forms.Form):
    size_class = forms.IntegerField(min_value=0)
    pieces = forms.IntegerField(min_value=1)
    weight_kg = forms.DecimalField(max_digits=12, decimal_places=3, min_value=0)

    def clean_size_class(self):
        size_class = self.cleaned_data['size_class']
        max_size = inventory_setting('MAX_SIZE_CLASS')
        if size_class > max_size:
            raise forms.ValidationError(f'Size class must be between 0 and {max_size}.')
        return size_class

    def clean_weight_kg(self):
        weight_kg = self.cleaned_data['weight_kg']
        if kg_to_grams(weight_kg) <= 0:
            raise forms.ValidationError('Weight must be at least one gram.')
        return weight_kg


class BaseTransferLineFormSet(forms.BaseFormSet):
    def clean(self):
        if any(self.errors):
            return
        seen = set()
        for form in self.forms:
            if not form.cleaned_data:
                continue
            size_class = form.cleaned_data['size_class']
            if size_class in seen:
                raise forms.ValidationError(f'Size {size_class} appears more than once.')
            seen.add(size_class)
        if not seen:
            raise forms.ValidationError('Add at least one size class to transfer.')

    def requested_sizes(self):
        """Map size class to (pieces, weight_grams) for the transfer service."""
        return {
            form.cleaned_data['size_class']: (
                form.cleaned_data['pieces'],
                kg_to_grams(form.cleaned_data['weight_kg']),
            )
            for form in self.forms
            if form.cleaned_data
        }


TransferLineFormSet = formset_factory(TransferLineForm, formset=BaseTransferLineFormSet, extra=1)


class TransferRequestForm(forms.Form):
    source_location = forms.ModelChoiceField(queryset=StorageLocation.objects.none())
    destination_location = forms.ModelChoiceField(queryset=StorageLocation.objects.none())
    notes = forms.CharField(widget=forms.Textarea, required=False)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        active = StorageLocation.objects.filter(status=StorageLocation.STATUS_ACTIVE)
        self.fields['source_location'].queryset = active
        self.fields['destination_location'].queryset = active

    def clean(self):
        cleaned = super().clean()
        source = cleaned.get('source_location')
        destination = cleaned.get('destination_location')
        if source and destination and source.pk == destination.pk:
            raise forms.ValidationError('Source and destination must be different storage locations.')
        return cleaned
