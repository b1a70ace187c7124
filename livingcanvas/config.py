"""
Configuration management for Living Canvas.

This module handles loading and accessing configuration values from config.yaml.
It provides a centralized place for provider, path, sandbox and layout settings
so behavior can be tuned without changing code.
"""

import yaml
from pathlib import Path
from typing import Any, Dict
import logging


class ConfigManager:
    """
    Manages configuration loading and access for Living Canvas.
    """
    
    def __init__(self, config_path: str = "config.yaml"):
        """
        Initialize the configuration manager.
        
        Args:
            config_path: Path to the configuration file
        """
        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._load_config()
    
    def _load_config(self) -> None:
        """Load configuration from YAML file."""
        try:
            if not self.config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
                
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._config = yaml.safe_load(f) or {}
                
            logging.info(f"Configuration loaded from {self.config_path}")
            
        except Exception as e:
            logging.error(f"Failed to load configuration: {e}")
            # Fall back to default configuration
            self._config = self._get_default_config()
            
    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values as fallback."""
        return {
            "ai": {
                "provider": "ollama",
                "model": "gemma3",
                "ollama_host": "http://localhost:11434",
                "timeout": 60.0,
                "max_tokens": 2000,
                "temperature": 0.7
            },
            "paths": {
                "blocks_dir": "blocks",
                "settings_file": "livingcanvas_settings.json",
                "log_file": "livingcanvas.log"
            },
            "database": {
                "filename": "livingcanvas.db"
            },
            "runtime": {
                "timeout": 10.0,
                "max_source_bytes": 65536,
                "max_output_chars": 200000,
                "startup_timeout": 30.0,
                "start_method": "spawn"
            },
            "canvas": {
                "node_gap": 300,
                "output_width": 300,
                "output_height": 200,
                "block_width": 250,
                "block_height": 60
            },
            "logging": {
                "level": "INFO",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        }
    
    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.
        
        Args:
            key_path: Dot-separated path to the configuration value (e.g., "ai.model")
            default: Default value if key is not found
            
        Returns:
            The configuration value
            
        Examples:
            config.get("ai.model")  # Returns "gemma3"
            config.get("canvas.node_gap")  # Returns 300
        """
        keys = key_path.split('.')
        value = self._config
        
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
                
        return value
    
    def get_section(self, section: str) -> Dict[str, Any]:
        """
        Get an entire configuration section.
        
        Args:
            section: Name of the configuration section
            
        Returns:
            Dictionary containing the section configuration
        """
        return self._config.get(section, {})
    
    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()
    
    # Convenience properties for commonly used values
    
    @property
    def provider_name(self) -> str:
        """Get the default completion provider name."""
        return self.get("ai.provider", "ollama")
    
    @property
    def model_name(self) -> str:
        """Get AI model name."""
        return self.get("ai.model", "gemma3")
    
    @property
    def ollama_host(self) -> str:
        """Get Ollama host URL."""
        return self.get("ai.ollama_host", "http://localhost:11434")
    
    @property
    def ai_timeout(self) -> float:
        """Get the completion provider HTTP timeout."""
        return self.get("ai.timeout", 60.0)
    
    @property
    def blocks_directory(self) -> str:
        """Get the block library root directory."""
        return self.get("paths.blocks_dir", "blocks")
    
    @property
    def settings_filename(self) -> str:
        """Get the key-value settings file name."""
        return self.get("paths.settings_file", "livingcanvas_settings.json")
    
    @property
    def log_filename(self) -> str:
        """Get log file name."""
        return self.get("paths.log_file", "livingcanvas.log")
    
    @property
    def database_filename(self) -> str:
        """Get run history database filename."""
        return self.get("database.filename", "livingcanvas.db")
    
    @property
    def runtime_timeout(self) -> float:
        """Get the wall-clock limit for one block logic invocation."""
        return self.get("runtime.timeout", 10.0)
    
    @property
    def node_gap(self) -> int:
        """Get the horizontal gap used when placing new nodes."""
        return self.get("canvas.node_gap", 300)


# Global configuration instance
config = ConfigManager()


def get_config() -> ConfigManager:
    """
    Get the global configuration instance.
    
    Returns:
        The global ConfigManager instance
    """
    return config
