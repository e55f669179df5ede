"""
Data loader for survey public-use files.

This module reads the statistical-software table formats survey agencies
distribute (SPSS, Stata, SAS) plus delimited text, keeping column names,
row order and any embedded value labels. Format-specific metadata is
converted into a SurveyMetadata object.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union, Tuple, Any
import pandas as pd
import numpy as np
import pyreadstat

from .models import SurveyMetadata, VariableDefinition, VariableType
from ..exceptions import FormatError


class DataLoader:
    """
    Data loader for survey data in statistical-software formats.

    Supports:
    - SPSS files (.sav, .zsav, .por)
    - Stata files (.dta)
    - SAS files (.sas7bdat, .xpt)
    - CSV/TSV files

    Files are always addressed by explicit path; the loader never changes
    the process working directory.
    """

    def __init__(self, encoding: Optional[str] = None):
        """
        Initialize the DataLoader.

        Parameters
        ----------
        encoding : str, optional
            Text encoding passed to the readers. None lets each reader use
            the encoding recorded in the file.
        """
        self.encoding = encoding
        self.logger = logging.getLogger(__name__)

        # File format handlers
        self._handlers = {
            '.sav': self._load_spss,
            '.zsav': self._load_spss,
            '.por': self._load_spss,
            '.dta': self._load_stata,
            '.sas7bdat': self._load_sas,
            '.xpt': self._load_sas,
            '.csv': self._load_csv,
            '.tsv': self._load_csv,
        }

    @property
    def supported_extensions(self) -> List[str]:
        return sorted(self._handlers)

    def load_data(self,
                  file_path: Union[str, Path],
                  metadata_path: Optional[Union[str, Path]] = None,
                  convert_missing_codes: Optional[List[Union[int, float]]] = None,
                  **kwargs) -> Tuple[pd.DataFrame, SurveyMetadata]:
        """
        Load survey data from file with automatic format detection.

        Parameters
        ----------
        file_path : str or Path
            Path to the data file
        metadata_path : str or Path, optional
            Path to a JSON metadata sidecar with variable labels and
            missing codes
        convert_missing_codes : list, optional
            Codes replaced by NaN in every numeric column (for example the
            negative non-response codes used by HINTS)
        **kwargs
            Additional arguments passed to the format-specific reader

        Returns
        -------
        tuple
            (DataFrame with survey data, SurveyMetadata)
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"Data file not found: {file_path}")

        extension = file_path.suffix.lower()

        if extension not in self._handlers:
            raise FormatError(
                f"Unsupported file format: {extension or '<none>'} "
                f"(expected one of {', '.join(self.supported_extensions)})"
            )

        self.logger.info(f"Loading data from {file_path} (format: {extension})")

        handler = self._handlers[extension]
        try:
            data, metadata = handler(file_path, **kwargs)
        except FormatError:
            raise
        except Exception as e:
            raise FormatError(f"Could not read {file_path}: {e}") from e

        partial_read = any(kwargs.get(key) for key in ('row_limit', 'row_offset', 'metadataonly'))
        if not partial_read and metadata.n_records > 0 and len(data) != metadata.n_records:
            raise FormatError(
                f"{file_path} is truncated: header declares {metadata.n_records} records, "
                f"{len(data)} could be read"
            )

        if metadata_path:
            metadata = self._load_metadata(Path(metadata_path), metadata)

        data = self._apply_missing_codes(data, metadata, convert_missing_codes)

        self.logger.info(f"Loaded {len(data)} records with {len(data.columns)} variables")

        return data, metadata

    def _load_spss(self, file_path: Path, **kwargs) -> Tuple[pd.DataFrame, SurveyMetadata]:
        """Load SPSS files with metadata extraction."""
        if file_path.suffix.lower() == '.por':
            # read_por has no encoding argument
            data, meta = pyreadstat.read_por(str(file_path), **kwargs)
        else:
            if self.encoding:
                kwargs.setdefault('encoding', self.encoding)
            data, meta = pyreadstat.read_sav(str(file_path), **kwargs)

        return data, self._extract_metadata(meta, file_path, "SPSS")

    def _load_stata(self, file_path: Path, **kwargs) -> Tuple[pd.DataFrame, SurveyMetadata]:
        """Load Stata files with metadata extraction."""
        if self.encoding:
            kwargs.setdefault('encoding', self.encoding)

        data, meta = pyreadstat.read_dta(str(file_path), **kwargs)

        return data, self._extract_metadata(meta, file_path, "Stata")

    def _load_sas(self, file_path: Path, **kwargs) -> Tuple[pd.DataFrame, SurveyMetadata]:
        """Load SAS files with metadata extraction."""
        if self.encoding:
            kwargs.setdefault('encoding', self.encoding)

        if file_path.suffix.lower() == '.sas7bdat':
            data, meta = pyreadstat.read_sas7bdat(str(file_path), **kwargs)
        else:  # .xpt
            data, meta = pyreadstat.read_xport(str(file_path), **kwargs)

        return data, self._extract_metadata(meta, file_path, "SAS")

    def _load_csv(self, file_path: Path, **kwargs) -> Tuple[pd.DataFrame, SurveyMetadata]:
        """Load CSV/TSV files. No value labels are available."""
        sep = kwargs.pop('sep', '\t' if file_path.suffix.lower() == '.tsv' else ',')
        data = pd.read_csv(file_path, sep=sep, encoding=self.encoding or 'utf-8', **kwargs)

        variables = {
            col: VariableDefinition(
                name=col,
                label=col,
                type=self._infer_type_from_dtype(data[col])
            )
            for col in data.columns
        }

        metadata = SurveyMetadata(
            survey_id=file_path.stem,
            title=f"Delimited Survey Data: {file_path.name}",
            n_records=len(data),
            variables=variables,
            source_path=str(file_path)
        )
        return data, metadata

    def _extract_metadata(self, meta, file_path: Path, software: str) -> SurveyMetadata:
        """Convert a pyreadstat metadata container into SurveyMetadata."""
        value_labels = meta.variable_value_labels or {}
        column_labels = meta.column_names_to_labels or {}
        missing_ranges = getattr(meta, 'missing_ranges', None) or {}

        variables = {}
        for col_name in meta.column_names:
            categories = value_labels.get(col_name)
            label = column_labels.get(col_name) or col_name

            missing_codes = []
            for missing_range in missing_ranges.get(col_name, []):
                if missing_range.get('lo') == missing_range.get('hi'):
                    missing_codes.append(missing_range['lo'])

            variables[col_name] = VariableDefinition(
                name=col_name,
                label=label,
                type=self._infer_variable_type(col_name, meta, categories),
                categories=dict(categories) if categories else None,
                missing_codes=missing_codes
            )

        return SurveyMetadata(
            survey_id=file_path.stem,
            title=meta.file_label or f"{software} Survey Data: {file_path.name}",
            n_records=meta.number_rows if meta.number_rows and meta.number_rows > 0 else 0,
            variables=variables,
            source_path=str(file_path),
            file_encoding=meta.file_encoding
        )

    def _infer_variable_type(self, col_name: str, meta, categories: Optional[Dict]) -> VariableType:
        """Infer variable type from readstat metadata."""
        if categories:
            if len(categories) == 2:
                return VariableType.BINARY
            return VariableType.NOMINAL

        readstat_types = meta.readstat_variable_types or {}
        if readstat_types.get(col_name) == 'string':
            return VariableType.NOMINAL
        return VariableType.RATIO

    def _infer_type_from_dtype(self, series: pd.Series) -> VariableType:
        if pd.api.types.is_numeric_dtype(series):
            return VariableType.RATIO
        return VariableType.NOMINAL

    def _load_metadata(self, metadata_path: Path, file_metadata: SurveyMetadata) -> SurveyMetadata:
        """Merge a JSON metadata sidecar into the file metadata."""
        try:
            with open(metadata_path, 'r', encoding='utf-8') as f:
                metadata_dict = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise FormatError(f"Could not read metadata file {metadata_path}: {e}") from e

        for var_name, var_info in metadata_dict.get('variables', {}).items():
            existing = file_metadata.get_variable(var_name)
            categories = var_info.get('categories')
            if categories:
                categories = {self._parse_code(k): v for k, v in categories.items()}

            file_metadata.add_variable(VariableDefinition(
                name=var_name,
                label=var_info.get('label', existing.label if existing else var_name),
                type=VariableType(var_info.get('type', existing.type.value if existing else 'nominal')),
                categories=categories or (existing.categories if existing else None),
                missing_codes=var_info.get('missing_codes', existing.missing_codes if existing else [])
            ))

        file_metadata.weights_variable = metadata_dict.get('weights_variable', file_metadata.weights_variable)
        file_metadata.strata_variable = metadata_dict.get('strata_variable', file_metadata.strata_variable)
        file_metadata.cluster_variable = metadata_dict.get('cluster_variable', file_metadata.cluster_variable)

        return file_metadata

    @staticmethod
    def _parse_code(code: Any) -> Any:
        """JSON object keys are strings; restore numeric codes."""
        if isinstance(code, str):
            try:
                number = float(code)
            except ValueError:
                return code
            return int(number) if number.is_integer() else number
        return code

    def _apply_missing_codes(self,
                             data: pd.DataFrame,
                             metadata: SurveyMetadata,
                             convert_missing_codes: Optional[List[Union[int, float]]]) -> pd.DataFrame:
        """Replace declared missing codes with NaN in numeric columns."""
        replaced = 0
        for col_name in data.columns:
            if not pd.api.types.is_numeric_dtype(data[col_name]):
                continue

            codes = list(convert_missing_codes or [])
            var_def = metadata.get_variable(col_name)
            if var_def and var_def.missing_codes:
                codes.extend(var_def.missing_codes)

            if codes:
                mask = data[col_name].isin(codes)
                if mask.any():
                    data[col_name] = data[col_name].mask(mask, np.nan)
                    replaced += int(mask.sum())

        if replaced:
            self.logger.info(f"Converted {replaced} missing-code values to NaN")

        return data
