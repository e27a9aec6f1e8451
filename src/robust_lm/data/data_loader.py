"""Dataset loading and saving utilities"""

from pathlib import Path
from typing import Dict, Optional, Union

import pandas as pd

from ..models.observation import Dataset


class DataLoader:
    """Load and save datasets as CSV files"""

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)

    def load_dataset(self, filename: str, name: Optional[str] = None) -> Dataset:
        """
        Load a dataset from CSV

        The file must have ``x`` and ``y`` columns; an ``obs`` column, if
        present, becomes the observation index.
        """
        filepath = self.data_dir / filename
        df = pd.read_csv(filepath)

        if 'obs' in df.columns:
            df = df.set_index('obs')

        return Dataset(name=name or Path(filename).stem, data=df)

    def save_dataset(self, dataset: Dataset, filename: Optional[str] = None) -> Path:
        """Write a dataset to CSV, keeping the observation index"""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        filepath = self.data_dir / (filename or f"{dataset.name}.csv")
        dataset.to_frame().to_csv(filepath, index=False)
        return filepath

    def save_all(self, datasets: Dict[str, Dataset]) -> Dict[str, Path]:
        return {key: self.save_dataset(ds) for key, ds in datasets.items()}
